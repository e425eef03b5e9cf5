import uuid
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from core.entities import RateType, Vehicle, VehicleStatus, VehicleType, utcnow

from .database import as_utc, session_scope
from .models import VehicleModel
from .repositories import VehicleRepository
from .store_errors import VehicleAlreadyParkedError, VehicleNotFoundError, VehicleStateError


def vehicle_from_model(model: VehicleModel) -> Vehicle:
    return Vehicle(
        vehicle_id=model.id,
        garage_id=model.garage_id,
        license_plate=model.license_plate,
        vehicle_type=VehicleType(model.vehicle_type),
        rate_type=RateType(model.rate_type),
        status=VehicleStatus(model.status),
        spot_id=model.spot_id,
        checked_in_at=as_utc(model.checked_in_at),
        checked_out_at=as_utc(model.checked_out_at),
        notes=model.notes,
    )


class SqlVehicleRepository(VehicleRepository):
    """Vehicle store backed by SQLAlchemy.

    The (garage_id, license_plate) unique constraint decides insert races;
    the `status = 'departed'` guard decides reactivation races.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _select_by_plate(self, garage_id: str, license_plate: str):
        return select(VehicleModel).where(
            VehicleModel.garage_id == garage_id,
            VehicleModel.license_plate == license_plate,
        )

    def find_by_plate(self, garage_id: str, license_plate: str) -> Optional[Vehicle]:
        with session_scope(self._session_factory) as db:
            model = db.scalars(self._select_by_plate(garage_id, license_plate)).first()
            return vehicle_from_model(model) if model else None

    def create_or_reactivate(
        self,
        garage_id: str,
        license_plate: str,
        spot_id: str,
        vehicle_type: VehicleType,
        rate_type: RateType,
        notes: Optional[str] = None,
    ) -> Tuple[Vehicle, Optional[Vehicle]]:
        now = utcnow()
        fields = dict(
            vehicle_type=VehicleType(vehicle_type).value,
            rate_type=RateType(rate_type).value,
            status=VehicleStatus.PARKED.value,
            spot_id=spot_id,
            checked_in_at=now,
            checked_out_at=None,
            notes=notes,
        )

        with session_scope(self._session_factory) as db:
            # Second pass only happens when a concurrent insert won the unique key.
            for _ in range(2):
                existing = db.scalars(self._select_by_plate(garage_id, license_plate)).first()

                if existing is None:
                    vehicle_id = str(uuid.uuid4())
                    db.add(
                        VehicleModel(
                            id=vehicle_id,
                            garage_id=garage_id,
                            license_plate=license_plate,
                            **fields,
                        )
                    )
                    try:
                        db.commit()
                    except IntegrityError:
                        db.rollback()
                        continue
                    return self._built(vehicle_id, garage_id, license_plate, spot_id,
                                       vehicle_type, rate_type, now, notes), None

                prior = vehicle_from_model(existing)
                if prior.status == VehicleStatus.PARKED:
                    raise VehicleAlreadyParkedError(license_plate, prior.spot_id)

                result = db.execute(
                    update(VehicleModel)
                    .where(
                        VehicleModel.id == prior.vehicle_id,
                        VehicleModel.status == VehicleStatus.DEPARTED.value,
                    )
                    .values(**fields)
                    .execution_options(synchronize_session=False)
                )
                db.commit()
                if result.rowcount != 1:
                    # Someone else reactivated the record between our read and write.
                    raise VehicleAlreadyParkedError(license_plate, None)
                return self._built(prior.vehicle_id, garage_id, license_plate, spot_id,
                                   vehicle_type, rate_type, now, notes), prior

        raise VehicleAlreadyParkedError(license_plate, None)

    @staticmethod
    def _built(vehicle_id, garage_id, license_plate, spot_id, vehicle_type, rate_type, now, notes):
        return Vehicle(
            vehicle_id=vehicle_id,
            garage_id=garage_id,
            license_plate=license_plate,
            vehicle_type=VehicleType(vehicle_type),
            rate_type=RateType(rate_type),
            status=VehicleStatus.PARKED,
            spot_id=spot_id,
            checked_in_at=now,
            checked_out_at=None,
            notes=notes,
        )

    def mark_departed(self, garage_id: str, license_plate: str) -> Vehicle:
        now = utcnow()
        with session_scope(self._session_factory) as db:
            result = db.execute(
                update(VehicleModel)
                .where(
                    VehicleModel.garage_id == garage_id,
                    VehicleModel.license_plate == license_plate,
                    VehicleModel.status == VehicleStatus.PARKED.value,
                )
                .values(status=VehicleStatus.DEPARTED.value, spot_id=None, checked_out_at=now)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            if result.rowcount != 1:
                raise VehicleNotFoundError(f"No parked vehicle {license_plate} in {garage_id}")
            model = db.scalars(self._select_by_plate(garage_id, license_plate)).first()
            return vehicle_from_model(model)

    def restore(self, vehicle: Vehicle, only_if: Optional[VehicleStatus] = None) -> None:
        fields = dict(
            garage_id=vehicle.garage_id,
            license_plate=vehicle.license_plate,
            vehicle_type=vehicle.vehicle_type.value,
            rate_type=vehicle.rate_type.value,
            status=vehicle.status.value,
            spot_id=vehicle.spot_id,
            checked_in_at=vehicle.checked_in_at,
            checked_out_at=vehicle.checked_out_at,
            notes=vehicle.notes,
        )
        with session_scope(self._session_factory) as db:
            if only_if is not None:
                result = db.execute(
                    update(VehicleModel)
                    .where(
                        VehicleModel.id == vehicle.vehicle_id,
                        VehicleModel.status == only_if.value,
                    )
                    .values(**fields)
                    .execution_options(synchronize_session=False)
                )
                db.commit()
                if result.rowcount != 1:
                    raise VehicleStateError(
                        f"Vehicle {vehicle.license_plate} is no longer {only_if.value}"
                    )
                return

            model = db.get(VehicleModel, vehicle.vehicle_id)
            if model is None:
                db.add(VehicleModel(id=vehicle.vehicle_id, **fields))
            else:
                for name, value in fields.items():
                    setattr(model, name, value)
            db.commit()

    def find_parked(self, garage_id: str) -> List[Vehicle]:
        stmt = (
            select(VehicleModel)
            .where(
                VehicleModel.garage_id == garage_id,
                VehicleModel.status == VehicleStatus.PARKED.value,
            )
            .order_by(VehicleModel.checked_in_at, VehicleModel.license_plate)
        )
        with session_scope(self._session_factory) as db:
            return [vehicle_from_model(m) for m in db.scalars(stmt)]

    def count_by_status(self, garage_id: str) -> Dict[VehicleStatus, int]:
        stmt = (
            select(VehicleModel.status, func.count())
            .where(VehicleModel.garage_id == garage_id)
            .group_by(VehicleModel.status)
        )
        counts = {status: 0 for status in VehicleStatus}
        with session_scope(self._session_factory) as db:
            for status, count in db.execute(stmt):
                counts[VehicleStatus(status)] = count
        return counts

    def delete(self, vehicle_id: str) -> None:
        with session_scope(self._session_factory) as db:
            result = db.execute(delete(VehicleModel).where(VehicleModel.id == vehicle_id))
            db.commit()
            if result.rowcount != 1:
                raise VehicleNotFoundError(f"Vehicle {vehicle_id} not found")
