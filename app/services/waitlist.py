from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple
import logging

from redis.asyncio import Redis
from sqlalchemy.orm import Session

from app.core.clock import ensure_utc
from app.core.config import get_settings
from app.core.deps import Actor
from app.core.exceptions import (
    AlreadyBooked,
    DuplicateWaitlist,
    Forbidden,
    InvalidState,
    NotFound,
    OfferExpired,
)
from app.models.booking import Booking, BookingStatus, BookingType, WaitlistEntry, WaitlistStatus
from app.models.schedule import Class
from app.repositories.booking import booking_repository, waitlist_repository
from app.repositories.schedule import class_repository
from app.schemas.schedule import SessionSlot
from app.services import slot_resolver
from app.services.availability import availability_service
from app.services.catalog import catalog_service
from app.services.session_lock import UnitResult, emit, run_locked

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (WaitlistStatus.WAITING, WaitlistStatus.OFFERED)


class WaitlistService:
    """
    Cola FIFO por sesión.

    Solo las entradas `waiting` tienen posición, y forman la secuencia 1..N
    sin huecos. Al liberarse una plaza la entrada con menor posición pasa a
    `offered` y retiene la plaza hasta `expires_at`; el miembro debe aceptarla
    explícitamente. Los métodos `*_locked` no confirman: se ejecutan dentro de
    una unidad de `run_locked`.
    """

    # ------------------------------------------------------------------
    # Operaciones dentro de la unidad bloqueada
    # ------------------------------------------------------------------

    def promote_locked(
        self, db: Session, slot: SessionSlot, capacity: int, now: datetime
    ) -> List[WaitlistEntry]:
        """Ofrecer plazas libres a la cabeza de la cola mientras haya plazas y entradas en espera."""
        now = ensure_utc(now)
        window = timedelta(hours=get_settings().WAITLIST_OFFER_WINDOW_HOURS)
        promoted: List[WaitlistEntry] = []

        while availability_service.free_seats(db, slot, capacity, now) > 0:
            head = waitlist_repository.get_head(
                db, class_id=slot.class_id, booking_date=slot.booking_date, start_time=slot.start_time
            )
            if not head:
                break

            position = head.position
            head.status = WaitlistStatus.OFFERED
            head.position = None
            head.notified_at = now
            # La oferta nunca dura más allá del inicio de la sesión
            head.expires_at = min(now + window, slot.starts_at)
            db.flush()
            waitlist_repository.shift_down_after(
                db, class_id=slot.class_id, booking_date=slot.booking_date,
                start_time=slot.start_time, position=position
            )
            promoted.append(head)
            logger.info(
                f"Entrada {head.id} (miembro {head.member_id}) promovida a oferta para clase "
                f"{slot.class_id} {slot.booking_date} {slot.start_time}, expira {head.expires_at}"
            )

        return promoted

    def join_locked(
        self,
        db: Session,
        slot: SessionSlot,
        class_obj: Class,
        member_id: int,
        notes: Optional[str] = None,
        recurring_booking_id: Optional[int] = None,
    ) -> WaitlistEntry:
        """Añadir al miembro al final de la cola. Quien llama ya comprobó que la sesión está llena."""
        existing = waitlist_repository.get_member_entry(
            db, member_id=member_id, class_id=slot.class_id,
            booking_date=slot.booking_date, start_time=slot.start_time
        )
        if existing and existing.status in ACTIVE_STATUSES:
            raise DuplicateWaitlist(
                f"El miembro {member_id} ya está en la lista de espera de esta sesión"
            )

        position = waitlist_repository.get_max_position(
            db, class_id=slot.class_id, booking_date=slot.booking_date, start_time=slot.start_time
        ) + 1

        values = {
            "status": WaitlistStatus.WAITING,
            "position": position,
            "notified_at": None,
            "expires_at": None,
            "notes": notes,
            "recurring_booking_id": recurring_booking_id,
            "class_name": class_obj.name,
        }
        if existing:
            # Reactivar la entrada previa (caducada o convertida y luego cancelada)
            entry = waitlist_repository.update(db, db_obj=existing, obj_in=values)
        else:
            entry = waitlist_repository.create(db, obj_in={
                **values,
                "member_id": member_id,
                "class_id": slot.class_id,
                "booking_date": slot.booking_date,
                "start_time": slot.start_time,
            })

        logger.info(
            f"Miembro {member_id} en lista de espera de clase {slot.class_id} "
            f"{slot.booking_date} {slot.start_time} en posición {position}"
        )
        return entry

    def convert_locked(self, db: Session, entry: WaitlistEntry, class_obj: Class, end_time: time) -> Booking:
        """Convertir una oferta vigente en reserva confirmada."""
        booking = booking_repository.create(db, obj_in={
            "member_id": entry.member_id,
            "class_id": entry.class_id,
            "class_name": class_obj.name,
            "booking_date": entry.booking_date,
            "start_time": entry.start_time,
            "end_time": end_time,
            "location": class_obj.location,
            "status": BookingStatus.CONFIRMED,
            "booking_type": BookingType.RECURRING if entry.recurring_booking_id else BookingType.SINGLE,
            "recurring_booking_id": entry.recurring_booking_id,
            "waitlist_entry_id": entry.id,
            "notes": entry.notes,
        })
        entry.status = WaitlistStatus.CONVERTED
        entry.position = None
        db.flush()
        logger.info(f"Oferta {entry.id} aceptada: reserva {booking.id} para miembro {entry.member_id}")
        return booking

    # ------------------------------------------------------------------
    # Operaciones públicas
    # ------------------------------------------------------------------

    async def join(
        self,
        db: Session,
        member_id: int,
        class_id: int,
        booking_date: date,
        start_time: Optional[time] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
        recurring_booking_id: Optional[int] = None,
    ) -> WaitlistEntry:
        """
        Entrar en la lista de espera de una sesión llena.

        Raises:
            InvalidSlot: La sesión no existe o ya empezó
            AlreadyBooked: El miembro ya tiene reserva confirmada
            DuplicateWaitlist: El miembro ya está en espera u ofertado
            InvalidState: La sesión tiene plazas libres
        """
        now = ensure_utc(now)
        class_obj = catalog_service.get_class(db, class_id)
        slot = slot_resolver.resolve(class_obj, booking_date, now, start_time=start_time)

        def work() -> UnitResult:
            if booking_repository.get_member_confirmed(
                db, member_id=member_id, class_id=slot.class_id,
                booking_date=slot.booking_date, start_time=slot.start_time
            ):
                raise AlreadyBooked(f"El miembro {member_id} ya tiene reserva para esta sesión")

            existing = waitlist_repository.get_member_entry(
                db, member_id=member_id, class_id=slot.class_id,
                booking_date=slot.booking_date, start_time=slot.start_time
            )
            if existing and existing.status in ACTIVE_STATUSES:
                raise DuplicateWaitlist(
                    f"El miembro {member_id} ya está en la lista de espera de esta sesión"
                )

            result = UnitResult()
            result.offered = self.promote_locked(db, slot, class_obj.capacity, now)
            if not availability_service.is_full(db, slot, class_obj.capacity, now):
                result.error = InvalidState("La sesión tiene plazas libres: reserve directamente")
                return result

            result.value = self.join_locked(
                db, slot, class_obj, member_id, notes=notes, recurring_booking_id=recurring_booking_id
            )
            return result

        result = run_locked(
            db, class_id=slot.class_id, booking_date=slot.booking_date, start_time=slot.start_time, work=work
        )
        return await emit(result, redis_client)

    async def promote(
        self,
        db: Session,
        class_id: int,
        booking_date: date,
        start_time: time,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
    ) -> List[WaitlistEntry]:
        """
        Promover la cola de una sesión en su propia unidad bloqueada.

        No hace nada si la sesión ya empezó o la clase no existe.
        """
        now = ensure_utc(now)
        class_obj = class_repository.get(db, id=class_id)
        if not class_obj:
            return []
        slot = slot_resolver.session_for(class_obj, booking_date, start_time)
        if slot.starts_at <= now:
            return []

        def work() -> UnitResult:
            return UnitResult(offered=self.promote_locked(db, slot, class_obj.capacity, now))

        result = run_locked(
            db, class_id=class_id, booking_date=booking_date, start_time=start_time, work=work
        )
        await emit(result, redis_client)
        return result.offered

    async def accept_offer(
        self,
        db: Session,
        entry_id: int,
        actor: Actor,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
    ) -> Booking:
        """
        Aceptar una oferta de plaza.

        Si la oferta ya caducó se marca como `expired`, se ofrece la plaza al
        siguiente de la cola y después se lanza OfferExpired. Una oferta que
        el barrido periódico ya caducó también responde con OfferExpired.

        Raises:
            NotFound, Forbidden, OfferExpired, InvalidState
        """
        now = ensure_utc(now)
        entry = self._get_for_actor(db, entry_id, actor)
        class_obj, slot = self._session_of(db, entry)

        def work() -> UnitResult:
            db.refresh(entry)
            # La oferta pudo caducar ya en el barrido periódico
            if (
                entry.status == WaitlistStatus.EXPIRED
                and entry.expires_at is not None
                and ensure_utc(entry.expires_at) <= now
            ):
                raise OfferExpired(f"La oferta {entry.id} caducó el {entry.expires_at}")
            if entry.status != WaitlistStatus.OFFERED:
                raise InvalidState(f"La entrada {entry.id} no tiene una oferta pendiente ({entry.status.value})")

            result = UnitResult()
            if ensure_utc(entry.expires_at) <= now:
                self._expire_locked(db, entry)
                if slot.starts_at > now:
                    result.offered = self.promote_locked(db, slot, class_obj.capacity, now)
                result.error = OfferExpired(f"La oferta {entry.id} caducó el {entry.expires_at}")
                return result

            booking = self.convert_locked(db, entry, class_obj, slot.end_time)
            result.value = booking
            result.confirmed.append(booking)
            return result

        result = run_locked(
            db, class_id=entry.class_id, booking_date=entry.booking_date, start_time=entry.start_time, work=work
        )
        return await emit(result, redis_client)

    async def remove(
        self,
        db: Session,
        entry_id: int,
        actor: Actor,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
    ) -> WaitlistEntry:
        """
        Salir de la lista de espera.

        La entrada pasa a `expired`. Si estaba en espera, las posteriores suben
        un puesto; si tenía una oferta, la plaza retenida se ofrece al siguiente.
        """
        now = ensure_utc(now)
        entry = self._get_for_actor(db, entry_id, actor)
        class_obj, slot = self._session_of(db, entry)

        def work() -> UnitResult:
            db.refresh(entry)
            if entry.status not in ACTIVE_STATUSES:
                raise InvalidState(f"La entrada {entry.id} no está activa ({entry.status.value})")

            result = UnitResult(value=entry)
            was_offered = entry.status == WaitlistStatus.OFFERED
            self._expire_locked(db, entry)
            if was_offered and slot.starts_at > now:
                result.offered = self.promote_locked(db, slot, class_obj.capacity, now)
            logger.info(f"Miembro {entry.member_id} sale de la lista de espera (entrada {entry.id})")
            return result

        result = run_locked(
            db, class_id=entry.class_id, booking_date=entry.booking_date, start_time=entry.start_time, work=work
        )
        return await emit(result, redis_client)

    async def expire_offers(
        self,
        db: Session,
        now: Optional[datetime] = None,
        member_id: Optional[int] = None,
        redis_client: Optional[Redis] = None,
    ) -> int:
        """
        Caducar ofertas vencidas y ofrecer las plazas al siguiente de cada cola.

        La ejecuta el scheduler periódicamente y, filtrada por miembro, la
        consulta de la lista de espera del miembro.

        Returns:
            Número de ofertas caducadas
        """
        now = ensure_utc(now)
        candidates = waitlist_repository.get_expired_offers(db, now=now, member_id=member_id)
        sessions = sorted({(e.class_id, e.booking_date, e.start_time) for e in candidates})

        expired_total = 0
        for class_id, booking_date, start_time in sessions:
            expired_total += await self._expire_session_offers(
                db, class_id, booking_date, start_time, now, redis_client
            )

        if expired_total:
            logger.info(f"{expired_total} ofertas de lista de espera caducadas")
        return expired_total

    def get_member_waitlist(self, db: Session, member_id: int) -> List[WaitlistEntry]:
        return waitlist_repository.get_member_active(db, member_id=member_id)

    def get_position(self, db: Session, entry_id: int, actor: Optional[Actor] = None) -> Tuple[WaitlistEntry, Optional[int]]:
        """Posición actual de una entrada (None si no está en espera)."""
        if actor is not None:
            entry = self._get_for_actor(db, entry_id, actor)
        else:
            entry = waitlist_repository.get(db, id=entry_id)
            if not entry:
                raise NotFound(f"Entrada de lista de espera {entry_id} no encontrada")
        return entry, entry.position if entry.status == WaitlistStatus.WAITING else None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _expire_session_offers(
        self,
        db: Session,
        class_id: int,
        booking_date: date,
        start_time: time,
        now: datetime,
        redis_client: Optional[Redis],
    ) -> int:
        class_obj = class_repository.get(db, id=class_id)
        slot = slot_resolver.session_for(class_obj, booking_date, start_time) if class_obj else None

        def work() -> UnitResult:
            # Releer dentro del bloqueo: la oferta pudo aceptarse mientras tanto
            entries = waitlist_repository.get_expired_offers(
                db, now=now, class_id=class_id, booking_date=booking_date, start_time=start_time
            )
            for entry in entries:
                self._expire_locked(db, entry)
                logger.info(f"Oferta {entry.id} (miembro {entry.member_id}) caducada")

            result = UnitResult(value=len(entries))
            if entries and slot is not None and slot.starts_at > now:
                result.offered = self.promote_locked(db, slot, class_obj.capacity, now)
            return result

        result = run_locked(
            db, class_id=class_id, booking_date=booking_date, start_time=start_time, work=work
        )
        await emit(result, redis_client)
        return result.value

    def _expire_locked(self, db: Session, entry: WaitlistEntry) -> None:
        """Pasar la entrada a `expired` y cerrar el hueco que deja en la cola."""
        position = entry.position
        was_waiting = entry.status == WaitlistStatus.WAITING
        entry.status = WaitlistStatus.EXPIRED
        entry.position = None
        db.flush()
        if was_waiting and position is not None:
            waitlist_repository.shift_down_after(
                db, class_id=entry.class_id, booking_date=entry.booking_date,
                start_time=entry.start_time, position=position
            )

    def _session_of(self, db: Session, entry: WaitlistEntry) -> Tuple[Class, SessionSlot]:
        class_obj = class_repository.get(db, id=entry.class_id)
        if not class_obj:
            raise NotFound(f"Clase {entry.class_id} no encontrada")
        return class_obj, slot_resolver.session_for(class_obj, entry.booking_date, entry.start_time)

    def _get_for_actor(self, db: Session, entry_id: int, actor: Actor) -> WaitlistEntry:
        entry = waitlist_repository.get(db, id=entry_id)
        if not entry:
            raise NotFound(f"Entrada de lista de espera {entry_id} no encontrada")
        if entry.member_id != actor.member_id and not actor.is_admin:
            raise Forbidden("No puede modificar la lista de espera de otro miembro")
        return entry



waitlist_service = WaitlistService()
