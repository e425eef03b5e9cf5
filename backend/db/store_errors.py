class StoreError(Exception):
    """
    Base class for repository failures.
    """
    pass


class StoreUnavailableError(StoreError):
    """
    Raised when the store could not be reached in time (lock timeout,
    connection failure).
    """
    pass


class SpotNotFoundError(StoreError):
    pass


class DuplicateSpotError(StoreError):
    pass


class VehicleAlreadyParkedError(StoreError):
    """
    Raised by create_or_reactivate when the plate already has a parked record.
    """

    def __init__(self, license_plate: str, spot_id):
        super().__init__(f"Vehicle {license_plate} is already parked at {spot_id}")
        self.license_plate = license_plate
        self.spot_id = spot_id


class VehicleNotFoundError(StoreError):
    pass


class SessionNotFoundError(StoreError):
    pass


class VehicleStateError(StoreError):
    """
    Raised when a conditional vehicle write finds the record in another state.
    """
    pass


class SessionStateError(StoreError):
    """
    Raised when a conditional session transition finds the wrong status.
    """
    pass
