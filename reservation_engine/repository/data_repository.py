"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Optional
from uuid import uuid4

from reservation_engine.domain.models import (
    AutoCharge,
    Discount,
    DiscountType,
    Guest,
    GuestType,
    ManualCharge,
    Persisted,
    RateType,
    ReservationState,
    Room,
    RoomAllocation,
    SpecialCharge,
    SpecialChargeMaster,
)
from reservation_engine.utils.config import Settings, get_settings
from reservation_engine.utils.logger import get_logger


logger = get_logger(__name__)


class PersistenceError(Exception):
    """Raised when a single store operation cannot be applied."""


@dataclass(frozen=True)
class ReservationRecord:
    """Reservation header projection used by service layer."""

    reservation_id: str
    guest_count: int
    guest_type: GuestType
    check_in: date
    check_out: date
    discount: Discount
    total_price: Decimal
    advance_payment: Decimal
    balance_payment: Decimal
    status: str


def _new_id() -> str:
    return str(uuid4())


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def _execute_write(self, operation: str, sql: str, params: tuple) -> int:
        """Run one write statement and return the affected row count."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(sql, params)
                conn.commit()
                return cursor.rowcount
        except sqlite3.Error as exc:
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    def _require_row(self, operation: str, rowcount: int, record_id: str) -> None:
        if rowcount == 0:
            raise PersistenceError(f"{operation} failed: record {record_id} not found")

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id TEXT PRIMARY KEY,
                        room_number TEXT NOT NULL UNIQUE,
                        room_type TEXT NOT NULL,
                        capacity INTEGER NOT NULL CHECK (capacity > 0),
                        tariff TEXT NOT NULL,
                        is_active INTEGER NOT NULL DEFAULT 1,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS SpecialChargesMaster (
                        id TEXT PRIMARY KEY,
                        charge_name TEXT NOT NULL,
                        default_rate TEXT NOT NULL,
                        rate_type TEXT NOT NULL
                            CHECK (rate_type IN ('per_day', 'per_person', 'fixed')),
                        description TEXT NOT NULL DEFAULT '',
                        is_active INTEGER NOT NULL DEFAULT 1,
                        deleted_at DATETIME
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Reservations (
                        id TEXT PRIMARY KEY,
                        guest_count INTEGER NOT NULL CHECK (guest_count > 0),
                        guest_type TEXT NOT NULL,
                        check_in_date TEXT NOT NULL,
                        check_out_date TEXT NOT NULL,
                        discount_type TEXT NOT NULL DEFAULT 'none',
                        discount_value TEXT NOT NULL DEFAULT '0',
                        total_price TEXT NOT NULL DEFAULT '0',
                        advance_payment TEXT NOT NULL DEFAULT '0',
                        balance_payment TEXT NOT NULL DEFAULT '0',
                        status TEXT NOT NULL DEFAULT 'confirmed',
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        updated_at DATETIME
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ReservationRooms (
                        id TEXT PRIMARY KEY,
                        reservation_id TEXT NOT NULL,
                        room_id TEXT NOT NULL,
                        room_number TEXT NOT NULL,
                        room_type TEXT NOT NULL,
                        capacity INTEGER NOT NULL,
                        guest_count INTEGER NOT NULL CHECK (guest_count > 0),
                        tariff_per_night TEXT NOT NULL,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        updated_at DATETIME,
                        deleted_at DATETIME,
                        FOREIGN KEY (reservation_id) REFERENCES Reservations(id),
                        FOREIGN KEY (room_id) REFERENCES Rooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Guests (
                        id TEXT PRIMARY KEY,
                        reservation_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        phone TEXT NOT NULL,
                        whatsapp TEXT NOT NULL DEFAULT '',
                        telegram TEXT NOT NULL DEFAULT '',
                        is_primary_guest INTEGER NOT NULL DEFAULT 0,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        updated_at DATETIME,
                        deleted_at DATETIME,
                        FOREIGN KEY (reservation_id) REFERENCES Reservations(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ReservationSpecialCharges (
                        id TEXT PRIMARY KEY,
                        reservation_id TEXT NOT NULL,
                        charge_id TEXT,
                        charge_name TEXT NOT NULL,
                        custom_rate TEXT NOT NULL,
                        quantity INTEGER NOT NULL CHECK (quantity > 0),
                        custom_description TEXT NOT NULL DEFAULT '',
                        total_amount TEXT NOT NULL,
                        is_auto_generated INTEGER NOT NULL DEFAULT 0,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        updated_at DATETIME,
                        deleted_at DATETIME,
                        FOREIGN KEY (reservation_id) REFERENCES Reservations(id),
                        FOREIGN KEY (charge_id) REFERENCES SpecialChargesMaster(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Payments (
                        id TEXT PRIMARY KEY,
                        reservation_id TEXT NOT NULL,
                        amount TEXT NOT NULL,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (reservation_id) REFERENCES Reservations(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservation_rooms_room
                    ON ReservationRooms(room_id, deleted_at);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservations_dates
                    ON Reservations(check_in_date, check_out_date, status);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed a small room inventory and charge catalog only when tables are empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute("SELECT COUNT(*) AS count FROM Rooms;")
                room_count = int(cursor.fetchone()["count"])
                if room_count > 0:
                    logger.info("Demo data already present; skipping seed")
                    return

                rooms = [
                    ("101", "Couple", 2, "1000"),
                    ("102", "Couple", 2, "1000"),
                    ("103", "Couple", 2, "1200"),
                    ("201", "Quad", 4, "1500"),
                    ("202", "Quad", 4, "1600"),
                    ("301", "Family", 6, "3000"),
                    ("302", "Family", 6, "3200"),
                    ("401", "Dormitory", 10, "4000"),
                ]
                cursor.executemany(
                    """
                    INSERT INTO Rooms (id, room_number, room_type, capacity, tariff)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    [(_new_id(), *room) for room in rooms],
                )

                charges = [
                    ("Kitchen", "2000", "per_day", "Per day"),
                    ("Campfire", "300", "per_day", "Per day"),
                    ("Conference Hall", "5000", "per_day", "Per day"),
                    (
                        self._settings.extra_person_charge_name,
                        str(self._settings.extra_person_default_rate),
                        "per_person",
                        "Per person per day",
                    ),
                ]
                cursor.executemany(
                    """
                    INSERT INTO SpecialChargesMaster (
                        id, charge_name, default_rate, rate_type, description
                    )
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    [(_new_id(), *charge) for charge in charges],
                )
                conn.commit()
            logger.info(
                "Demo seed completed | rooms=%s | catalog_entries=%s",
                len(rooms),
                len(charges),
            )
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

    # Room inventory

    def get_available_rooms(
        self,
        check_in: date,
        check_out: date,
        *,
        reservation_id: Optional[str] = None,
        include_unavailable: bool = False,
    ) -> list[Room]:
        """Return rooms flagged by availability for [check_in, check_out).

        Rooms held by `reservation_id` count as available so an edited
        reservation can keep them. With `include_unavailable=True` every active
        room is returned with its flag.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT
                    r.id,
                    r.room_number,
                    r.room_type,
                    r.capacity,
                    r.tariff,
                    NOT EXISTS (
                        SELECT 1
                        FROM ReservationRooms AS rr
                        INNER JOIN Reservations AS res ON res.id = rr.reservation_id
                        WHERE rr.room_id = r.id
                          AND rr.deleted_at IS NULL
                          AND res.status != 'cancelled'
                          AND res.check_in_date < ?
                          AND res.check_out_date > ?
                          AND (? IS NULL OR res.id != ?)
                    ) AS is_available
                FROM Rooms AS r
                WHERE r.is_active = 1
                ORDER BY r.capacity ASC, r.room_number ASC;
                """,
                (
                    check_out.isoformat(),
                    check_in.isoformat(),
                    reservation_id,
                    reservation_id,
                ),
            )
            rooms = [
                Room(
                    room_id=str(row["id"]),
                    room_number=str(row["room_number"]),
                    room_type=str(row["room_type"]),
                    capacity=int(row["capacity"]),
                    tariff=Decimal(row["tariff"]),
                    is_available=bool(row["is_available"]),
                )
                for row in cursor.fetchall()
            ]
        if include_unavailable:
            return rooms
        return [room for room in rooms if room.is_available]

    # Special charge catalog

    def list_active_charges(self) -> list[SpecialChargeMaster]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, charge_name, default_rate, rate_type, description, is_active
                FROM SpecialChargesMaster
                WHERE is_active = 1 AND deleted_at IS NULL
                ORDER BY charge_name ASC;
                """
            )
            return [
                SpecialChargeMaster(
                    charge_id=str(row["id"]),
                    name=str(row["charge_name"]),
                    default_rate=Decimal(row["default_rate"]),
                    rate_type=RateType(row["rate_type"]),
                    description=str(row["description"]),
                    is_active=bool(row["is_active"]),
                )
                for row in cursor.fetchall()
            ]

    # Reservation header

    def create_reservation(
        self,
        *,
        guest_count: int,
        guest_type: GuestType,
        check_in: date,
        check_out: date,
        discount: Discount,
        total_price: Decimal,
        advance_payment: Decimal = Decimal("0"),
        balance_payment: Decimal = Decimal("0"),
    ) -> str:
        reservation_id = _new_id()
        self._execute_write(
            "create_reservation",
            """
            INSERT INTO Reservations (
                id,
                guest_count,
                guest_type,
                check_in_date,
                check_out_date,
                discount_type,
                discount_value,
                total_price,
                advance_payment,
                balance_payment
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                reservation_id,
                guest_count,
                guest_type.value,
                check_in.isoformat(),
                check_out.isoformat(),
                discount.discount_type.value,
                str(discount.value),
                str(total_price),
                str(advance_payment),
                str(balance_payment),
            ),
        )
        return reservation_id

    def update_reservation(
        self,
        reservation_id: str,
        *,
        guest_count: int,
        guest_type: GuestType,
        check_in: date,
        check_out: date,
        discount: Discount,
        total_price: Decimal,
        advance_payment: Decimal,
        balance_payment: Decimal,
    ) -> None:
        rowcount = self._execute_write(
            "update_reservation",
            """
            UPDATE Reservations
            SET guest_count = ?,
                guest_type = ?,
                check_in_date = ?,
                check_out_date = ?,
                discount_type = ?,
                discount_value = ?,
                total_price = ?,
                advance_payment = ?,
                balance_payment = ?,
                updated_at = ?
            WHERE id = ?;
            """,
            (
                guest_count,
                guest_type.value,
                check_in.isoformat(),
                check_out.isoformat(),
                discount.discount_type.value,
                str(discount.value),
                str(total_price),
                str(advance_payment),
                str(balance_payment),
                _utc_now(),
                reservation_id,
            ),
        )
        self._require_row("update_reservation", rowcount, reservation_id)

    def get_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Reservations WHERE id = ?;", (reservation_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return ReservationRecord(
                reservation_id=str(row["id"]),
                guest_count=int(row["guest_count"]),
                guest_type=GuestType(row["guest_type"]),
                check_in=date.fromisoformat(row["check_in_date"]),
                check_out=date.fromisoformat(row["check_out_date"]),
                discount=Discount(
                    discount_type=DiscountType(row["discount_type"]),
                    value=Decimal(row["discount_value"]),
                ),
                total_price=Decimal(row["total_price"]),
                advance_payment=Decimal(row["advance_payment"]),
                balance_payment=Decimal(row["balance_payment"]),
                status=str(row["status"]),
            )

    def load_reservation_state(self, reservation_id: str) -> ReservationState:
        """Return the non-deleted rooms, guests and charges tagged as persisted."""
        return ReservationState(
            rooms=tuple(self.list_reservation_rooms(reservation_id)),
            guests=tuple(self.list_guests(reservation_id)),
            charges=tuple(self.list_reservation_charges(reservation_id)),
        )

    # Reservation rooms

    def create_room(self, reservation_id: str, allocation: RoomAllocation) -> str:
        record_id = _new_id()
        self._execute_write(
            "create_room",
            """
            INSERT INTO ReservationRooms (
                id,
                reservation_id,
                room_id,
                room_number,
                room_type,
                capacity,
                guest_count,
                tariff_per_night
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                record_id,
                reservation_id,
                allocation.room_id,
                allocation.room_number,
                allocation.room_type,
                allocation.capacity,
                allocation.guest_count,
                str(allocation.tariff),
            ),
        )
        return record_id

    def update_room(self, reservation_id: str, record_id: str, allocation: RoomAllocation) -> None:
        rowcount = self._execute_write(
            "update_room",
            """
            UPDATE ReservationRooms
            SET guest_count = ?,
                tariff_per_night = ?,
                capacity = ?,
                room_type = ?,
                updated_at = ?
            WHERE id = ? AND reservation_id = ? AND deleted_at IS NULL;
            """,
            (
                allocation.guest_count,
                str(allocation.tariff),
                allocation.capacity,
                allocation.room_type,
                _utc_now(),
                record_id,
                reservation_id,
            ),
        )
        self._require_row("update_room", rowcount, record_id)

    def delete_room(self, reservation_id: str, record_id: str) -> None:
        rowcount = self._execute_write(
            "delete_room",
            """
            UPDATE ReservationRooms
            SET deleted_at = ?
            WHERE id = ? AND reservation_id = ? AND deleted_at IS NULL;
            """,
            (_utc_now(), record_id, reservation_id),
        )
        self._require_row("delete_room", rowcount, record_id)

    def list_reservation_rooms(self, reservation_id: str) -> list[RoomAllocation]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, room_id, room_number, room_type, capacity, guest_count, tariff_per_night
                FROM ReservationRooms
                WHERE reservation_id = ? AND deleted_at IS NULL
                ORDER BY created_at ASC, room_number ASC;
                """,
                (reservation_id,),
            )
            return [
                RoomAllocation(
                    room_id=str(row["room_id"]),
                    room_number=str(row["room_number"]),
                    room_type=str(row["room_type"]),
                    capacity=int(row["capacity"]),
                    tariff=Decimal(row["tariff_per_night"]),
                    guest_count=int(row["guest_count"]),
                    key=str(row["id"]),
                    identity=Persisted(str(row["id"])),
                )
                for row in cursor.fetchall()
            ]

    # Guests

    def create_guest(self, reservation_id: str, guest: Guest) -> str:
        record_id = _new_id()
        self._execute_write(
            "create_guest",
            """
            INSERT INTO Guests (
                id, reservation_id, name, phone, whatsapp, telegram, is_primary_guest
            )
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                record_id,
                reservation_id,
                guest.name,
                guest.phone,
                guest.whatsapp,
                guest.telegram,
                int(guest.is_primary),
            ),
        )
        return record_id

    def update_guest(self, reservation_id: str, record_id: str, guest: Guest) -> None:
        rowcount = self._execute_write(
            "update_guest",
            """
            UPDATE Guests
            SET name = ?, phone = ?, whatsapp = ?, telegram = ?, updated_at = ?
            WHERE id = ? AND reservation_id = ? AND deleted_at IS NULL;
            """,
            (
                guest.name,
                guest.phone,
                guest.whatsapp,
                guest.telegram,
                _utc_now(),
                record_id,
                reservation_id,
            ),
        )
        self._require_row("update_guest", rowcount, record_id)

    def delete_guest(self, reservation_id: str, record_id: str) -> None:
        rowcount = self._execute_write(
            "delete_guest",
            """
            UPDATE Guests
            SET deleted_at = ?
            WHERE id = ? AND reservation_id = ? AND deleted_at IS NULL;
            """,
            (_utc_now(), record_id, reservation_id),
        )
        self._require_row("delete_guest", rowcount, record_id)

    def list_guests(self, reservation_id: str) -> list[Guest]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, name, phone, whatsapp, telegram, is_primary_guest
                FROM Guests
                WHERE reservation_id = ? AND deleted_at IS NULL
                ORDER BY is_primary_guest DESC, created_at ASC;
                """,
                (reservation_id,),
            )
            return [
                Guest(
                    name=str(row["name"]),
                    phone=str(row["phone"]),
                    whatsapp=str(row["whatsapp"]),
                    telegram=str(row["telegram"]),
                    is_primary=bool(row["is_primary_guest"]),
                    key=str(row["id"]),
                    identity=Persisted(str(row["id"])),
                )
                for row in cursor.fetchall()
            ]

    # Reservation special charges

    def upsert_special_charge(self, reservation_id: str, charge: SpecialCharge) -> str:
        """Update the charge's stored record, or insert one when it has none yet."""
        record_id = charge.identity.record_id
        total_amount = str(charge.rate * charge.quantity)
        if record_id is not None:
            rowcount = self._execute_write(
                "upsert_special_charge",
                """
                UPDATE ReservationSpecialCharges
                SET charge_id = ?,
                    charge_name = ?,
                    custom_rate = ?,
                    quantity = ?,
                    custom_description = ?,
                    total_amount = ?,
                    updated_at = ?
                WHERE id = ? AND reservation_id = ? AND deleted_at IS NULL;
                """,
                (
                    charge.master_id,
                    charge.name,
                    str(charge.rate),
                    charge.quantity,
                    charge.description,
                    total_amount,
                    _utc_now(),
                    record_id,
                    reservation_id,
                ),
            )
            if rowcount > 0:
                return record_id

        new_record_id = _new_id()
        self._execute_write(
            "upsert_special_charge",
            """
            INSERT INTO ReservationSpecialCharges (
                id,
                reservation_id,
                charge_id,
                charge_name,
                custom_rate,
                quantity,
                custom_description,
                total_amount,
                is_auto_generated
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                new_record_id,
                reservation_id,
                charge.master_id,
                charge.name,
                str(charge.rate),
                charge.quantity,
                charge.description,
                total_amount,
                int(charge.is_auto_generated),
            ),
        )
        return new_record_id

    def delete_special_charge(self, reservation_id: str, record_id: str) -> None:
        rowcount = self._execute_write(
            "delete_special_charge",
            """
            UPDATE ReservationSpecialCharges
            SET deleted_at = ?
            WHERE id = ? AND reservation_id = ? AND deleted_at IS NULL;
            """,
            (_utc_now(), record_id, reservation_id),
        )
        self._require_row("delete_special_charge", rowcount, record_id)

    def list_reservation_charges(self, reservation_id: str) -> list[SpecialCharge]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT
                    id,
                    charge_id,
                    charge_name,
                    custom_rate,
                    quantity,
                    custom_description,
                    is_auto_generated
                FROM ReservationSpecialCharges
                WHERE reservation_id = ? AND deleted_at IS NULL
                ORDER BY is_auto_generated ASC, created_at ASC;
                """,
                (reservation_id,),
            )
            charges: list[SpecialCharge] = []
            for row in cursor.fetchall():
                identity = Persisted(str(row["id"]))
                if row["is_auto_generated"] and row["charge_id"] is not None:
                    charges.append(
                        AutoCharge(
                            master_id=str(row["charge_id"]),
                            name=str(row["charge_name"]),
                            rate=Decimal(row["custom_rate"]),
                            quantity=int(row["quantity"]),
                            description=str(row["custom_description"]),
                            identity=identity,
                        )
                    )
                    continue
                charges.append(
                    ManualCharge(
                        name=str(row["charge_name"]),
                        rate=Decimal(row["custom_rate"]),
                        quantity=int(row["quantity"]),
                        description=str(row["custom_description"]),
                        master_id=(
                            str(row["charge_id"]) if row["charge_id"] is not None else None
                        ),
                        key=str(row["id"]),
                        identity=identity,
                    )
                )
            return charges

    # Payments

    def record_payment(self, reservation_id: str, amount: Decimal) -> str:
        payment_id = _new_id()
        self._execute_write(
            "record_payment",
            """
            INSERT INTO Payments (id, reservation_id, amount)
            VALUES (?, ?, ?);
            """,
            (payment_id, reservation_id, str(amount)),
        )
        return payment_id

    def total_paid(self, reservation_id: str) -> Decimal:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT amount FROM Payments WHERE reservation_id = ?;",
                (reservation_id,),
            )
            return sum((Decimal(row["amount"]) for row in cursor.fetchall()), Decimal("0"))
