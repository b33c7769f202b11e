from __future__ import annotations

from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from space_booking import BookingYamlRepository, ImageBlobStore, ReservationStore, SpaceCatalog, SpaceFilters
from space_booking.catalog import MAX_PER_PAGE, parse_pagination

mcp = FastMCP(
    "Space Booking MCP Server",
    instructions="Expose spaces and reservations from the space_booking project.",
    json_response=True,
)

DATA_DIR = Path(__file__).parent / "data"
REPOSITORY = BookingYamlRepository(DATA_DIR)
RESERVATIONS = ReservationStore(REPOSITORY)
CATALOG = SpaceCatalog(REPOSITORY, ImageBlobStore(DATA_DIR), RESERVATIONS)


@mcp.resource("booking://spaces")
async def list_space_names() -> list[str]:
    """List the names of every reservable space."""
    return [space.name for space in CATALOG.list(per_page=MAX_PER_PAGE).items]


@mcp.tool()
def list_spaces(
    name: str | None = None,
    min_capacity: int | None = None,
    available_on: str | None = None,
    page: int = 1,
) -> dict[str, Any]:
    """Return a page of spaces; ``available_on`` (YYYY-MM-DD) hides spaces booked for the whole day."""
    filters = SpaceFilters.from_query({"nombre": name, "capacidad": min_capacity, "fecha": available_on})
    page_number, per_page = parse_pagination({"page": page})
    return CATALOG.list(filters, page=page_number, per_page=per_page).to_dict(lambda space: space.to_dict())


@mcp.tool()
def list_space_reservations(space_id: int) -> list[dict[str, Any]]:
    """Return every reservation of a space ordered by date and start time."""
    CATALOG.get(space_id)
    return [record.to_dict() for record in RESERVATIONS.list_for_space(space_id)]


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
