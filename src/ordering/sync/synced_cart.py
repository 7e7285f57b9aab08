"""SyncedCart — optimistic cart mutations mirrored to the remote cart service.

Every command is applied to the local cart first, synchronously, so
validation and business-rule errors reach the caller before anything is
sent. The remote call then runs as a task on the running event loop:

    Pending -> Fulfilled   the remote line replaces the local one
    Pending -> Rejected    the local line is rolled back to the last confirmed state
    Pending -> Discarded   a newer command (or a clear / cancel) superseded it

Each cart line carries a generation token: the sequence of the newest
command issued for it. A response whose sequence no longer matches is
discarded, so out-of-order responses and rollbacks never clobber a newer
local edit. ``clear()`` and ``cancel_pending()`` bump an epoch that
invalidates every command issued before them.

Commands must be issued from inside a running event loop.
"""

import asyncio
import math
from collections.abc import Callable

from protean.exceptions import ValidationError

from ordering.cart.cart import ShoppingCart
from ordering.cart.coupons import CouponValidator
from ordering.cart.pricing import DeliverySlot, default_delivery_slots
from ordering.domain import logger
from ordering.errors import ConflictError, NetworkError
from ordering.remote.port import CartService, CouponResult, RemoteCart
from ordering.sync.commands import CartCommand, CommandStatus, ItemSync, SyncState
from shared.settings import StorefrontSettings


class SyncedCart:
    def __init__(
        self,
        cart: ShoppingCart,
        service: CartService,
        validator: CouponValidator,
        settings: StorefrontSettings | None = None,
        delivery_slots: dict[str, DeliverySlot] | None = None,
        on_change: Callable[[ShoppingCart], None] | None = None,
    ):
        self.cart = cart
        self.service = service
        self.validator = validator
        self.settings = settings or StorefrontSettings()
        self.delivery_slots = delivery_slots if delivery_slots is not None else default_delivery_slots()
        self.on_change = on_change

        self.last_error: NetworkError | None = None
        self._items: dict[str, ItemSync] = {}
        self._sequence = 0
        self._epoch = 0
        self._coupon_generation = 0
        self._confirmed_coupon = cart.coupon
        self._clear_generation = 0
        self._in_flight: set[CartCommand] = set()

    # -------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------
    def state_of(self, product_id) -> SyncState:
        sync = self._items.get(str(product_id))
        return sync.state if sync else SyncState.IDLE

    def confirmed_line(self, product_id) -> dict | None:
        """The line as last confirmed remotely, or the local line when it was never synced."""
        sync = self._items.get(str(product_id))
        if sync is None:
            line = self.cart.get_line(product_id)
            return line.to_record() if line else None
        return sync.confirmed

    @property
    def pending(self) -> list[CartCommand]:
        return sorted(self._in_flight, key=lambda command: command.sequence)

    @property
    def has_pending(self) -> bool:
        return bool(self._in_flight)

    async def wait_idle(self) -> None:
        """Wait until every in-flight command has settled."""
        while self._in_flight:
            await asyncio.gather(*(command.task for command in list(self._in_flight)))

    # -------------------------------------------------------------------
    # Item commands
    # -------------------------------------------------------------------
    def add_item(self, product, quantity=1) -> CartCommand:
        product_id = str(product.product_id)
        baseline = self._baseline(product_id)
        self.cart.add_item(product, quantity)
        return self._issue_item("add_item", product_id, baseline, lambda: self.service.add_item(product_id, quantity))

    def update_quantity(self, product_id, quantity) -> CartCommand:
        product_id = str(product_id)
        baseline = self._baseline(product_id)
        self.cart.update_quantity(product_id, quantity)
        if quantity <= 0:
            return self._issue_item("remove_item", product_id, baseline, lambda: self.service.remove_item(product_id))
        return self._issue_item(
            "update_item", product_id, baseline, lambda: self.service.update_item(product_id, quantity)
        )

    def remove_item(self, product_id) -> CartCommand:
        product_id = str(product_id)
        baseline = self._baseline(product_id)
        self.cart.remove_item(product_id)
        return self._issue_item("remove_item", product_id, baseline, lambda: self.service.remove_item(product_id))

    def clear(self) -> CartCommand:
        """Empty the cart and invalidate every command still in flight."""
        snapshot = [
            (str(line.product_id), self.confirmed_line(line.product_id), line.line_number)
            for line in self.cart.lines
        ]
        previous_coupon = self._confirmed_coupon
        previous_slot = self.cart.delivery_slot

        self.cart.clear()
        self._epoch += 1
        self._items.clear()
        self._confirmed_coupon = None

        command = self._new_command("clear_cart")
        self._clear_generation = command.sequence
        self._changed()

        def rollback():
            # Lines edited since the clear keep their newer state.
            for product_id, record, line_number in snapshot:
                if product_id not in self._items and record is not None:
                    self.cart.restore_line(product_id, record, line_number)
            if self._coupon_generation < command.sequence and self.cart.coupon is None:
                self.cart.restore_coupon(previous_coupon)
                self._confirmed_coupon = previous_coupon
            if previous_slot is not None and self.cart.delivery_slot is None:
                self.cart.select_delivery_slot(previous_slot)

        return self._start(
            command,
            self.service.clear_cart,
            is_current=lambda: self._clear_generation == command.sequence,
            on_fulfilled=lambda remote: None,
            on_rejected=rollback,
        )

    # -------------------------------------------------------------------
    # Coupon and delivery
    # -------------------------------------------------------------------
    def apply_coupon(self, code) -> CartCommand:
        self.cart.apply_coupon(code, self.validator)
        applied = self.cart.coupon

        command = self._new_command("apply_coupon")
        self._coupon_generation = command.sequence
        self._changed()

        def confirm(result: CouponResult):
            self._confirmed_coupon = applied
            if not math.isclose(result.discount, self.cart.discount, abs_tol=0.005):
                # Local pricing is authoritative; the service figure is only reported.
                logger.warning(
                    "sync.discount_mismatch",
                    code=applied.code,
                    local=self.cart.discount,
                    remote=result.discount,
                )

        def rollback():
            self.cart.restore_coupon(self._confirmed_coupon)

        return self._start(
            command,
            lambda: self.service.apply_coupon(applied.code),
            is_current=lambda: self._coupon_generation == command.sequence,
            on_fulfilled=confirm,
            on_rejected=rollback,
        )

    def remove_coupon(self) -> None:
        """Drop the coupon. Local only; a coupon still being applied is abandoned."""
        self._sequence += 1
        self._coupon_generation = self._sequence
        self._confirmed_coupon = None
        self.cart.remove_coupon()
        self._changed()

    def select_delivery_slot(self, slot_id) -> DeliverySlot:
        slot = self.delivery_slots.get(slot_id)
        if slot is None:
            raise ValidationError({"delivery_slot": [f"Unknown delivery slot {slot_id!r}"]})
        self.cart.select_delivery_slot(slot)
        self._changed()
        return slot

    def clear_delivery_slot(self) -> None:
        self.cart.clear_delivery_slot()
        self._changed()

    # -------------------------------------------------------------------
    # Cancellation and refresh
    # -------------------------------------------------------------------
    def cancel_pending(self) -> None:
        """Ignore the responses of every command in flight.

        Local state keeps its optimistic values; the next ``refresh()``
        reconciles it with the remote cart.
        """
        self._epoch += 1
        for product_id, sync in self._items.items():
            if sync.state is not SyncState.IDLE:
                line = self.cart.get_line(product_id)
                sync.state = SyncState.IDLE
                sync.confirmed = line.to_record() if line else None
        self._confirmed_coupon = self.cart.coupon
        logger.info("sync.cancelled", in_flight=len(self._in_flight))

    async def fetch_products(self) -> list[dict]:
        """GET /products, with the same timeout and retry policy as cart commands."""
        return await self._call_with_retry(self.service.fetch_products, "fetch_products")

    async def refresh(self) -> RemoteCart | None:
        """Fetch the remote cart and adopt it for every line not being edited.

        Lines with a command in flight keep their optimistic values; only
        their confirmed snapshot moves. Returns ``None`` when a clear or
        cancel superseded the fetch while it was in flight.
        """
        epoch = self._epoch
        local_ids = [str(line.product_id) for line in self.cart.lines]
        for product_id in local_ids:
            sync = self._items.setdefault(product_id, ItemSync(line_number=self._line_number(product_id)))
            if sync.state is SyncState.IDLE:
                sync.state = SyncState.RECONCILING

        try:
            remote = await self._call_with_retry(self.service.fetch_cart, "fetch_cart")
        except NetworkError as exc:
            self._settle_reconciling()
            self.last_error = exc
            logger.warning("sync.refresh_failed", error=exc.message)
            raise

        if epoch != self._epoch:
            logger.info("sync.discarded", command="fetch_cart", reason="superseded")
            return None

        remote_ids = [str(item.get("id")) for item in remote.items]
        for product_id in dict.fromkeys(local_ids + remote_ids):
            remote_line = remote.line(product_id)
            sync = self._items.get(product_id)
            if sync is None:
                sync = self._items[product_id] = ItemSync(state=SyncState.RECONCILING)
            if sync.state is SyncState.PENDING:
                sync.confirmed = self._complete(product_id, remote_line, sync.confirmed)
                continue
            if sync.state is not SyncState.RECONCILING:
                continue
            try:
                self._adopt(product_id, remote_line, sync)
            except ValidationError as exc:
                logger.warning("sync.line_skipped", product_id=product_id, errors=exc.messages)

        if remote.coupon_code and not self._coupon_in_flight():
            coupon = self.validator.catalogue.get(remote.coupon_code)
            if coupon is not None and coupon != self.cart.coupon:
                self.cart.restore_coupon(coupon)
                self._confirmed_coupon = coupon

        self._settle_reconciling()
        self._changed()
        logger.info("sync.refreshed", lines=len(remote.items))
        return remote

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _baseline(self, product_id: str) -> tuple[dict | None, int | None]:
        return self.confirmed_line(product_id), self._line_number(product_id)

    def _line_number(self, product_id: str) -> int | None:
        line = self.cart.get_line(product_id)
        return line.line_number if line else None

    def _complete(self, product_id: str, remote_line: dict | None, fallback: dict | None) -> dict | None:
        """Fill details the service left out of ``remote_line`` from the local snapshot."""
        if remote_line is None:
            return None
        local = self.cart.get_line(product_id)
        base = local.to_record() if local is not None else (fallback or {})
        return {**base, **{key: value for key, value in remote_line.items() if value is not None}}

    def _adopt(self, product_id: str, remote_line: dict | None, sync: ItemSync) -> None:
        record = self._complete(product_id, remote_line, sync.confirmed)
        self.cart.restore_line(product_id, record, sync.line_number)
        sync.confirmed = record
        if sync.line_number is None:
            sync.line_number = self._line_number(product_id)

    def _new_command(self, name: str, product_id: str | None = None) -> CartCommand:
        self._sequence += 1
        return CartCommand(name=name, sequence=self._sequence, epoch=self._epoch, product_id=product_id)

    def _issue_item(self, name: str, product_id: str, baseline, call) -> CartCommand:
        confirmed, line_number = baseline
        command = self._new_command(name, product_id)

        sync = self._items.get(product_id)
        if sync is None or sync.state is not SyncState.PENDING:
            sync = ItemSync(
                confirmed=confirmed,
                confirmed_sequence=sync.generation if sync else 0,
                line_number=line_number,
            )
            self._items[product_id] = sync
        elif sync.line_number is None:
            sync.line_number = line_number
        sync.state = SyncState.PENDING
        sync.generation = command.sequence
        self._changed()

        def is_current():
            return self._items.get(product_id) is sync and sync.generation == command.sequence

        def confirm(remote: RemoteCart):
            sync.state = SyncState.RECONCILING
            self._adopt(product_id, remote.line(product_id), sync)
            sync.confirmed_sequence = command.sequence
            sync.state = SyncState.IDLE

        def rollback():
            sync.state = SyncState.RECONCILING
            self.cart.restore_line(product_id, sync.confirmed, sync.line_number)
            sync.state = SyncState.IDLE

        def confirm_superseded(remote: RemoteCart) -> bool:
            # An older command's confirmation is still newer than the last one on record.
            if self._items.get(product_id) is not sync or command.sequence <= sync.confirmed_sequence:
                return False
            sync.confirmed_sequence = command.sequence
            if sync.state is SyncState.PENDING:
                sync.confirmed = self._complete(product_id, remote.line(product_id), sync.confirmed)
                return False
            # Nothing newer is in flight, so the cart must show what the service now holds.
            try:
                self._adopt(product_id, remote.line(product_id), sync)
            except ValidationError as exc:
                logger.error("sync.malformed_response", command=command.name, errors=exc.messages)
                return False
            return True

        return self._start(
            command,
            call,
            is_current=is_current,
            on_fulfilled=confirm,
            on_rejected=rollback,
            on_superseded=confirm_superseded,
        )

    def _start(self, command, call, is_current, on_fulfilled, on_rejected, on_superseded=None) -> CartCommand:
        logger.debug(
            "sync.command_issued", command=command.name, sequence=command.sequence, product_id=command.product_id
        )
        loop = asyncio.get_running_loop()
        command.task = loop.create_task(self._run(command, call, is_current, on_fulfilled, on_rejected, on_superseded))
        self._in_flight.add(command)
        return command

    async def _run(self, command, call, is_current, on_fulfilled, on_rejected, on_superseded) -> None:
        """Drive one command to a terminal status. Never raises."""

        def current() -> bool:
            return command.epoch == self._epoch and is_current()

        try:
            result = await self._call_with_retry(call, command.name, still_wanted=current)
        except ConflictError:
            self._discard(command)
            return
        except NetworkError as exc:
            if not current():
                self._discard(command)
                return
            on_rejected()
            self._reject(command, exc)
            return

        if not current():
            if on_superseded is not None and command.epoch == self._epoch and on_superseded(result):
                self._finish(command, CommandStatus.FULFILLED)
                logger.info("sync.late_confirmation", command=command.name, sequence=command.sequence)
                return
            self._discard(command)
            return

        try:
            on_fulfilled(result)
        except ValidationError as exc:
            logger.error("sync.malformed_response", command=command.name, errors=exc.messages)
            on_rejected()
            self._reject(command, NetworkError("The cart service sent an unreadable response", retryable=False))
            return

        self._finish(command, CommandStatus.FULFILLED)
        logger.debug("sync.fulfilled", command=command.name, sequence=command.sequence)

    async def _call_with_retry(self, call, name: str, still_wanted: Callable[[], bool] | None = None):
        """Call the remote service with a timeout, retrying retryable failures with backoff."""
        attempts = self.settings.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(call(), timeout=self.settings.request_timeout)
            except TimeoutError:
                error = NetworkError("The cart service took too long to respond", retryable=True)
            except NetworkError as exc:
                error = exc

            if not error.retryable or attempt == attempts:
                raise error
            if still_wanted is not None and not still_wanted():
                raise ConflictError(f"{name} was superseded before it could be retried")

            delay = self.settings.retry_backoff * 2 ** (attempt - 1)
            logger.info("sync.retrying", command=name, attempt=attempt, delay=delay, error=error.message)
            await asyncio.sleep(delay)

    def _coupon_in_flight(self) -> bool:
        return any(command.name == "apply_coupon" for command in self._in_flight)

    def _settle_reconciling(self) -> None:
        for sync in self._items.values():
            if sync.state is SyncState.RECONCILING:
                sync.state = SyncState.IDLE

    def _reject(self, command: CartCommand, error: NetworkError) -> None:
        self.last_error = error
        self._finish(command, CommandStatus.REJECTED, error)
        logger.warning(
            "sync.rolled_back",
            command=command.name,
            product_id=command.product_id,
            error=error.message,
            retryable=error.retryable,
        )

    def _discard(self, command: CartCommand) -> None:
        sync = self._items.get(command.product_id) if command.product_id else None
        error = ConflictError(
            f"Response to {command.name} arrived after a newer change and was ignored",
            sequence=command.sequence,
            current=sync.generation if sync else self._sequence,
        )
        self._finish(command, CommandStatus.DISCARDED, error)
        logger.info("sync.discarded", command=command.name, sequence=command.sequence, product_id=command.product_id)

    def _finish(self, command: CartCommand, status: CommandStatus, error=None) -> None:
        command.status = status
        command.error = error
        self._in_flight.discard(command)
        self._changed()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.cart)
