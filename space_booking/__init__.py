from .booking import TimeSlot, can_reserve, conflicts_with, has_time_overlap, is_full_day
from .errors import (
	BookingError,
	ConflictError,
	ForbiddenError,
	NotFoundError,
	StorageError,
	UnauthenticatedError,
	ValidationError,
)
from .models import Principal, Reservation, Role, Space, User
from .yaml_store import BookingYamlRepository
from .validator import ReservationValidator, ValidatedReservation
from .reservations import ReservationStore
from .images import ImageBlobStore
from .catalog import Page, SpaceCatalog, SpaceFilters
from .accounts import UserDirectory
from .seed import seed_demo_data

__all__ = [
	"TimeSlot",
	"can_reserve",
	"conflicts_with",
	"has_time_overlap",
	"is_full_day",
	"BookingError",
	"ConflictError",
	"ForbiddenError",
	"NotFoundError",
	"StorageError",
	"UnauthenticatedError",
	"ValidationError",
	"Principal",
	"Reservation",
	"Role",
	"Space",
	"User",
	"BookingYamlRepository",
	"ReservationValidator",
	"ValidatedReservation",
	"ReservationStore",
	"ImageBlobStore",
	"Page",
	"SpaceCatalog",
	"SpaceFilters",
	"UserDirectory",
	"seed_demo_data",
]
