from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from core.entities import Spot, SpotFeature, SpotStats, SpotStatus, SpotType

from .database import session_scope
from .models import SpotModel
from .repositories import SpotRepository, compute_spot_stats
from .store_errors import DuplicateSpotError


def features_to_text(features: Iterable[SpotFeature]) -> str:
    return ",".join(sorted(SpotFeature(f).value for f in features))


def features_from_text(raw: str) -> frozenset:
    return frozenset(SpotFeature(f) for f in raw.split(",") if f)


def spot_from_model(model: SpotModel) -> Spot:
    return Spot(
        garage_id=model.garage_id,
        floor=model.floor,
        bay=model.bay,
        number=model.number,
        spot_type=SpotType(model.spot_type),
        features=features_from_text(model.features or ""),
        status=SpotStatus(model.status),
        occupant=model.occupant,
        confirmed=bool(model.confirmed),
    )


class SqlSpotRepository(SpotRepository):
    """Spot store backed by SQLAlchemy.

    State transitions are single conditional UPDATE statements; the row
    count tells whether this caller's transition happened.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def add(self, spot: Spot) -> Spot:
        with session_scope(self._session_factory) as db:
            db.add(
                SpotModel(
                    garage_id=spot.garage_id,
                    spot_id=spot.spot_id,
                    floor=spot.floor,
                    bay=spot.bay,
                    number=spot.number,
                    spot_type=spot.spot_type.value,
                    features=features_to_text(spot.features),
                    status=spot.status.value,
                    occupant=spot.occupant,
                    confirmed=spot.confirmed,
                )
            )
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateSpotError(
                    f"Spot {spot.spot_id} already exists in {spot.garage_id}"
                ) from exc
        return spot

    def get(self, garage_id: str, spot_id: str) -> Optional[Spot]:
        with session_scope(self._session_factory) as db:
            model = db.get(SpotModel, (garage_id, spot_id))
            return spot_from_model(model) if model else None

    def list_spots(self, garage_id: str) -> List[Spot]:
        stmt = (
            select(SpotModel)
            .where(SpotModel.garage_id == garage_id)
            .order_by(SpotModel.floor, SpotModel.bay, SpotModel.number)
        )
        with session_scope(self._session_factory) as db:
            return [spot_from_model(m) for m in db.scalars(stmt)]

    def find_available(
        self, garage_id: str, spot_types: Optional[Iterable[SpotType]] = None
    ) -> List[Spot]:
        stmt = select(SpotModel).where(
            SpotModel.garage_id == garage_id,
            SpotModel.status == SpotStatus.AVAILABLE.value,
        )
        if spot_types is not None:
            stmt = stmt.where(SpotModel.spot_type.in_([SpotType(t).value for t in spot_types]))
        stmt = stmt.order_by(SpotModel.floor, SpotModel.bay, SpotModel.number)

        with session_scope(self._session_factory) as db:
            return [spot_from_model(m) for m in db.scalars(stmt)]

    def reserve(self, garage_id: str, spot_id: str, occupant: str) -> bool:
        stmt = (
            update(SpotModel)
            .where(
                SpotModel.garage_id == garage_id,
                SpotModel.spot_id == spot_id,
                SpotModel.status == SpotStatus.AVAILABLE.value,
            )
            .values(status=SpotStatus.OCCUPIED.value, occupant=occupant, confirmed=False)
        )
        return self._apply(stmt)

    def confirm(self, garage_id: str, spot_id: str, occupant: str) -> bool:
        stmt = (
            update(SpotModel)
            .where(
                SpotModel.garage_id == garage_id,
                SpotModel.spot_id == spot_id,
                SpotModel.status == SpotStatus.OCCUPIED.value,
                SpotModel.occupant == occupant,
            )
            .values(confirmed=True)
        )
        return self._apply(stmt)

    def release(self, garage_id: str, spot_id: str, occupant: Optional[str] = None) -> bool:
        stmt = update(SpotModel).where(
            SpotModel.garage_id == garage_id,
            SpotModel.spot_id == spot_id,
            SpotModel.status == SpotStatus.OCCUPIED.value,
        )
        if occupant is not None:
            stmt = stmt.where(SpotModel.occupant == occupant)
        stmt = stmt.values(status=SpotStatus.AVAILABLE.value, occupant=None, confirmed=False)
        return self._apply(stmt)

    def set_out_of_service(self, garage_id: str, spot_id: str, out_of_service: bool) -> bool:
        current, target = (
            (SpotStatus.AVAILABLE, SpotStatus.OUT_OF_SERVICE)
            if out_of_service
            else (SpotStatus.OUT_OF_SERVICE, SpotStatus.AVAILABLE)
        )
        stmt = (
            update(SpotModel)
            .where(
                SpotModel.garage_id == garage_id,
                SpotModel.spot_id == spot_id,
                SpotModel.status == current.value,
            )
            .values(status=target.value)
        )
        return self._apply(stmt)

    def get_stats(
        self, garage_id: str, spot_types: Optional[Iterable[SpotType]] = None
    ) -> SpotStats:
        # One SELECT, so all counts describe the same moment.
        return compute_spot_stats(self.list_spots(garage_id), spot_types)

    def _apply(self, stmt) -> bool:
        with session_scope(self._session_factory) as db:
            result = db.execute(stmt.execution_options(synchronize_session=False))
            db.commit()
            return result.rowcount == 1
