from dataclasses import dataclass
from typing import Callable

from core.config_loader import AppConfig
from database.uow import notification_uow
from notification.channels import ChannelRegistry
from notification.events import NotificationEventDispatcher
from notification.queue import DeliveryQueue
from notification.service import NotificationOrchestrator
from notification.templates import TemplateEngine


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    This eliminates duplicate wiring code between the web app, the worker
    and scripts. DB access is obtained per operation via notification_uow().
    """
    config: AppConfig
    registry: ChannelRegistry
    delivery_queue: DeliveryQueue
    template_engine: TemplateEngine
    orchestrator: NotificationOrchestrator
    dispatcher: NotificationEventDispatcher

    @classmethod
    def build(cls, config: AppConfig, uow_factory: Callable = notification_uow) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration
            uow_factory: Unit-of-work factory (tests pass one bound to SQLite)

        Returns:
            Fully wired AppContext instance
        """
        registry = ChannelRegistry.from_config(config.channels)
        delivery_queue = DeliveryQueue.from_config(config, registry=registry, uow_factory=uow_factory)
        template_engine = TemplateEngine(uow_factory)
        orchestrator = NotificationOrchestrator(
            delivery_queue,
            template_engine=template_engine,
            uow_factory=uow_factory,
        )

        return cls(
            config=config,
            registry=registry,
            delivery_queue=delivery_queue,
            template_engine=template_engine,
            orchestrator=orchestrator,
            dispatcher=NotificationEventDispatcher(orchestrator),
        )
