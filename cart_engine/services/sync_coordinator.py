# cart_engine/services/sync_coordinator.py
from cart_engine.domain.errors import CartError, ValidationError
from cart_engine.domain.schemas import ItemIn, OwnerMode, SyncReport
from cart_engine.services.guest_cart_store import GuestCartStore
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


class SyncCoordinator:
    """
    Przenosi koszyk goscia na koszyk konta, raz po zalogowaniu.

    1. pusty koszyk goscia -> nic nie robimy
    2. kazda pozycja po kolei (nie rownolegle) przez CartService.add_item,
       w kolejnosci dodania
    3. blad pozycji = ostrzezenie w raporcie, bez ponawiania
    4. na koniec koszyk goscia jest czyszczony, takze przy czesciowym bledzie
    """

    def __init__(self, cart_service, guest_store: GuestCartStore):
        self.cart_service = cart_service
        self.guest_store = guest_store

    def sync(self) -> SyncReport:
        guest_cart = self.guest_store.get()

        if guest_cart.is_empty:
            return SyncReport(skipped=True)

        if not self.cart_service.is_authenticated:
            raise ValidationError("User must be authenticated to sync cart")

        logger.info(f"Syncing {len(guest_cart.items)} guest cart items to account cart")
        report = SyncReport()

        for item in guest_cart.items:
            label = item.name or item.product_id
            try:
                result = self.cart_service.add_item(
                    ItemIn(
                        product_id=item.product_id,
                        quantity=item.quantity,
                        variant=item.variant,
                        name=item.name,
                        price=item.unit_price,
                        sku=item.sku,
                        image=item.image_ref,
                    )
                )
            except CartError as e:
                logger.warning(f"Guest item {item.product_id} not synced: {e.message}")
                report.failed.append(item.product_id)
                report.warnings.append(f"{label}: {e.message}")
                continue

            if result.degraded or result.cart.owner_mode is not OwnerMode.AUTHENTICATED:
                #sesja wygasla w trakcie, pozycja wrocila do koszyka goscia
                report.failed.append(item.product_id)
                report.warnings.append(f"{label}: kept in the cart on this device, session expired")
            else:
                report.synced.append(item.product_id)

        if self.cart_service.is_authenticated:
            self.guest_store.clear()
        else:
            logger.warning("Session lost during cart sync, guest cart kept")

        logger.info(f"Cart sync done: {len(report.synced)} synced, {len(report.failed)} failed")
        return report
