"""SQLite persistence for calendars, schedules, overrides and interval state."""
