# ipam_controller/manager.py
"""
Controller Manager
Wires the store watch to the claim and pool controllers
"""

from typing import Callable, Optional
import logging

from ipam_controller.config import settings
from ipam_controller.core import ClaimReconciler, Controller, PoolReconciler, PoolResolver, is_supported
from ipam_controller.schemas import POOL_KINDS
from ipam_controller.store import ResourceStore, WatchEvent

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging the same way for every entry point"""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


class ControllerManager:
    """
    Runs the claim and pool controllers against one store

    Watch events only select which keys to reconcile; the reconcilers
    always read the current state themselves.
    """

    def __init__(
        self,
        store: ResourceStore,
        claim_workers: Optional[int] = None,
        pool_workers: Optional[int] = None,
    ):
        self.store = store
        self.resolver = PoolResolver(store)

        self.claim_reconciler = ClaimReconciler(store, self.resolver)
        self.claim_controller = Controller(
            "ipaddressclaim",
            self.claim_reconciler.reconcile,
            workers=claim_workers or settings.CLAIM_WORKERS,
        )

        self.pool_reconciler = PoolReconciler(
            store, self.resolver, enqueue_claim=self.claim_controller.enqueue
        )
        self.pool_controller = Controller(
            "pool",
            self.pool_reconciler.reconcile,
            workers=pool_workers or settings.POOL_WORKERS,
        )

        self._unsubscribe: Optional[Callable[[], None]] = None

    def handle_event(self, event: WatchEvent) -> None:
        """Map a store change to the keys it may affect"""
        obj = event.object

        if obj.kind == "IPAddressClaim":
            self.claim_controller.enqueue((obj.namespace, obj.name))

        elif obj.kind in POOL_KINDS:
            self.pool_controller.enqueue((obj.kind, obj.namespace, obj.name))

        elif obj.kind == "IPAddress":
            ref = obj.controller_reference()
            if ref is not None and ref.kind == "IPAddressClaim":
                self.claim_controller.enqueue((obj.namespace, ref.name))
            pool_ref = obj.spec.pool_ref
            if is_supported(pool_ref):
                namespace = obj.namespace if POOL_KINDS[pool_ref.kind].NAMESPACED else None
                self.pool_controller.enqueue((pool_ref.kind, namespace, pool_ref.name))

    def resync(self) -> None:
        """Queue every existing claim and pool"""
        for kind in POOL_KINDS:
            for pool in self.store.list(kind):
                self.pool_controller.enqueue((pool.kind, pool.namespace, pool.name))
        for claim in self.store.list("IPAddressClaim"):
            self.claim_controller.enqueue((claim.namespace, claim.name))

    def start(self) -> None:
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
        self._unsubscribe = self.store.watch(self.handle_event)
        self.resync()
        self.pool_controller.start()
        self.claim_controller.start()

    def stop(self) -> None:
        logger.info("Shutting down controllers")
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.claim_controller.stop()
        self.pool_controller.stop()

    def is_idle(self) -> bool:
        return self.claim_controller.queue.is_idle() and self.pool_controller.queue.is_idle()

    def __enter__(self) -> "ControllerManager":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
