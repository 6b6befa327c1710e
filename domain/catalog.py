"""Room Catalog - static partition of room types into numeric room bands"""
import json
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from domain.exceptions import CatalogError, UnknownRoomTypeError
from domain.value_objects import RoomTypeRange


class RoomCatalog:
    """Ordered, immutable set of room-type bands.

    Bands must have unique names and must not share any room number, so a
    room number always resolves to at most one room type.
    """

    def __init__(self, ranges: Iterable[RoomTypeRange]):
        self._ranges: Dict[str, RoomTypeRange] = {}
        for room_range in ranges:
            if room_range.name in self._ranges:
                raise CatalogError(f"Duplicate room type: {room_range.name}")
            for existing in self._ranges.values():
                if existing.intersects(room_range):
                    raise CatalogError(
                        f"Room bands overlap: {existing.name} "
                        f"({existing.start_id}-{existing.end_id}) and {room_range.name} "
                        f"({room_range.start_id}-{room_range.end_id})"
                    )
            self._ranges[room_range.name] = room_range
        if not self._ranges:
            raise CatalogError("Room catalog must define at least one room type")

    def get(self, room_type: str) -> RoomTypeRange:
        try:
            return self._ranges[room_type]
        except KeyError:
            raise UnknownRoomTypeError(room_type) from None

    def names(self) -> List[str]:
        return list(self._ranges)

    def ranges(self) -> List[RoomTypeRange]:
        return list(self._ranges.values())

    def nightly_rate(self, room_type: str) -> Decimal:
        return self.get(room_type).nightly_rate

    def type_for_room(self, room_number: int) -> Optional[RoomTypeRange]:
        for room_range in self._ranges.values():
            if room_range.contains(room_number):
                return room_range
        return None

    def __contains__(self, room_type: str) -> bool:
        return room_type in self._ranges

    def __iter__(self):
        return iter(self._ranges.values())

    def __len__(self) -> int:
        return len(self._ranges)

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "RoomCatalog":
        """Load a catalog from a JSON list of {name, start_id, end_id, nightly_rate} objects"""
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogError(f"Cannot read room catalog from {path}: {e}") from e
        if not isinstance(raw, list):
            raise CatalogError("Room catalog file must contain a JSON list")
        try:
            ranges = [
                RoomTypeRange(
                    name=item["name"],
                    start_id=item["start_id"],
                    end_id=item["end_id"],
                    nightly_rate=Decimal(str(item["nightly_rate"])),
                )
                for item in raw
            ]
        except (KeyError, TypeError) as e:
            raise CatalogError(f"Malformed room catalog entry in {path}: {e}") from e
        return cls(ranges)


DEFAULT_ROOM_TYPES = (
    RoomTypeRange(name="Standard", start_id=100, end_id=150, nightly_rate=Decimal("3000.00")),
    RoomTypeRange(name="Deluxe", start_id=200, end_id=250, nightly_rate=Decimal("5000.00")),
    RoomTypeRange(name="Suite", start_id=300, end_id=350, nightly_rate=Decimal("7500.00")),
)

DEFAULT_CATALOG = RoomCatalog(DEFAULT_ROOM_TYPES)
