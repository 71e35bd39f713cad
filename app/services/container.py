from __future__ import annotations

import logging
from dataclasses import dataclass

from app.config import AppConfig
from app.domain.devices import DeviceController, DeviceRegistry
from app.hardware.tuya import TuyaCloudClient, TuyaDeviceController
from app.services.application.schedule_coordinator import ExecutionCoordinator
from app.services.hardware.interval_service import DutyCycleEngine
from app.services.hardware.scheduling_service import SchedulingService
from app.workers.unified_scheduler import UnifiedScheduler
from infrastructure.database.repositories.schedules import SQLiteScheduleStore
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler
from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Aggregates long-lived services for dependency injection."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    store: SQLiteScheduleStore
    registry: DeviceRegistry
    tuya_client: TuyaCloudClient | None
    controller: DeviceController
    audit_logger: AuditLogger
    duty_cycle: DutyCycleEngine
    coordinator: ExecutionCoordinator
    scheduling_service: SchedulingService
    scheduler: UnifiedScheduler

    @classmethod
    def build(
        cls,
        config: AppConfig,
        *,
        controller: DeviceController | None = None,
    ) -> "ServiceContainer":
        """Construct the service container with all dependencies.

        Args:
            config: Application configuration
            controller: Device controller to use instead of the Tuya cloud
                controller (tests, dry runs)
        """
        logger.info("Building ServiceContainer...")

        database = SQLiteDatabaseHandler(config.database_path)
        database.create_tables()
        store = SQLiteScheduleStore(database)

        registry = DeviceRegistry.from_file(config.devices_file) if config.devices_file else DeviceRegistry()
        if config.interval_device_id not in registry:
            logger.warning("Interval device %s is not in the device registry", config.interval_device_id)

        tuya_client = None
        if controller is None:
            tuya_client = TuyaCloudClient(
                config.tuya_base_url,
                config.tuya_access_id,
                config.tuya_access_secret,
                timeout=config.tuya_timeout_seconds,
            )
            controller = TuyaDeviceController(tuya_client, registry)

        audit_logger = AuditLogger(config.audit_log_path, config.log_level)
        tz = config.tzinfo

        duty_cycle = DutyCycleEngine(
            store,
            controller,
            registry,
            config.interval_device_id,
            heartbeat_stale_seconds=config.heartbeat_stale_seconds,
            heartbeat_interval_seconds=config.heartbeat_interval_seconds,
            debounce_seconds=config.command_debounce_seconds,
            default_on_duration=config.default_on_duration,
            default_interval_duration=config.default_interval_duration,
            audit_logger=audit_logger,
        )
        coordinator = ExecutionCoordinator(store, controller, registry, tz, duty_cycle=duty_cycle)
        scheduling_service = SchedulingService(
            store,
            registry,
            controller,
            tz,
            default_override_minutes=config.default_override_minutes,
            audit_logger=audit_logger,
            duty_cycle=duty_cycle,
        )
        scheduler = UnifiedScheduler(timezone=tz)

        logger.info("ServiceContainer built with %d device(s)", len(registry))
        return cls(
            config=config,
            database=database,
            store=store,
            registry=registry,
            tuya_client=tuya_client,
            controller=controller,
            audit_logger=audit_logger,
            duty_cycle=duty_cycle,
            coordinator=coordinator,
            scheduling_service=scheduling_service,
            scheduler=scheduler,
        )

    def start_scheduler(self) -> None:
        """Register the background jobs and start the in-process scheduler."""
        from app.workers.scheduled_tasks import configure_scheduler

        try:
            configure_scheduler(self.scheduler, self)
        except Exception as e:
            raise RuntimeError("Failed to initialize UnifiedScheduler") from e
        logger.info("UnifiedScheduler initialized and started")

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        try:
            self.scheduler.shutdown()
        except RuntimeError as e:
            logger.warning("Failed to stop UnifiedScheduler: %s", e)

        self.database.close_db()
        logger.info("ServiceContainer shutdown complete.")
