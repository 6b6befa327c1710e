"""Domain Value Objects"""
from pydantic import BaseModel, Field, validator
from datetime import date
from decimal import Decimal
from typing import Iterator


class DateRange(BaseModel):
    """Half-open booking interval: every night in [check_in, check_out) is occupied"""
    check_in: date
    check_out: date

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValueError('Check-out must be after check-in')
        return v

    def nights(self) -> int:
        """Calculate number of nights"""
        return (self.check_out - self.check_in).days

    def overlaps(self, other: "DateRange") -> bool:
        """True when both intervals share at least one night"""
        return not (self.check_out <= other.check_in or self.check_in >= other.check_out)

    class Config:
        frozen = True


class RoomTypeRange(BaseModel):
    """Value Object mapping a room type to its inclusive room-number band and nightly rate"""
    name: str = Field(min_length=1)
    start_id: int = Field(ge=0)
    end_id: int = Field(ge=0)
    nightly_rate: Decimal = Field(ge=0)

    @validator('end_id')
    def end_not_before_start(cls, v, values):
        if 'start_id' in values and v < values['start_id']:
            raise ValueError('Room band end must not precede its start')
        return v

    @property
    def pool_size(self) -> int:
        return self.end_id - self.start_id + 1

    def room_numbers(self) -> Iterator[int]:
        """Room numbers in ascending order"""
        return iter(range(self.start_id, self.end_id + 1))

    def contains(self, room_number: int) -> bool:
        return self.start_id <= room_number <= self.end_id

    def intersects(self, other: "RoomTypeRange") -> bool:
        return not (self.end_id < other.start_id or self.start_id > other.end_id)

    class Config:
        frozen = True
