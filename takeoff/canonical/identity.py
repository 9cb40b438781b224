"""Identity key resolution for takeoff components.

Each component type family has exactly one key shape:

- spool        -> SpoolKey(spool_id)                       one record per row
- field_weld   -> FieldWeldKey(weld_number)                one record per row
- instrument   -> InstrumentKey(drawing, code, size)       never exploded
- pipe-like    -> AggregateKey(pipe_id)                    linear footage
- other types  -> StandardKey(drawing, code, size, seq)    exploded by qty

Keys have a JSON form (persisted in ``components.identity_key``) and a
rendered string form (``components.identity_key_text``) used for
duplicate detection and the unique index.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union

from takeoff.canonical.normalize import normalize_drawing, normalize_size
from takeoff.models import ComponentType


@dataclass(frozen=True, slots=True)
class StandardKey:
    """Discrete component; ``seq`` disambiguates repeats of one code on a drawing."""

    drawing_norm: str
    commodity_code: str
    size: str
    seq: int

    kind: ClassVar[str] = "standard"

    def to_json(self) -> dict:
        return {
            "drawing_norm": self.drawing_norm,
            "commodity_code": self.commodity_code,
            "size": self.size,
            "seq": self.seq,
        }

    def render(self) -> str:
        return f"{self.drawing_norm}-{self.size}-{self.commodity_code}-{self.seq:03d}"


@dataclass(frozen=True, slots=True)
class InstrumentKey:
    drawing_norm: str
    commodity_code: str
    size: str

    kind: ClassVar[str] = "instrument"

    def to_json(self) -> dict:
        return {
            "drawing_norm": self.drawing_norm,
            "commodity_code": self.commodity_code,
            "size": self.size,
            "seq": 1,
        }

    def render(self) -> str:
        return f"{self.drawing_norm}-{self.size}-{self.commodity_code}"


@dataclass(frozen=True, slots=True)
class SpoolKey:
    spool_id: str

    kind: ClassVar[str] = "spool"

    def to_json(self) -> dict:
        return {"spool_id": self.spool_id}

    def render(self) -> str:
        return self.spool_id


@dataclass(frozen=True, slots=True)
class FieldWeldKey:
    weld_number: str

    kind: ClassVar[str] = "field_weld"

    def to_json(self) -> dict:
        return {"weld_number": self.weld_number}

    def render(self) -> str:
        return self.weld_number


@dataclass(frozen=True, slots=True)
class AggregateKey:
    """One linear-footage component per drawing + size + commodity code."""

    pipe_id: str

    kind: ClassVar[str] = "aggregate"

    @classmethod
    def build(cls, drawing_norm: str, size: str, commodity_code: str) -> AggregateKey:
        return cls(pipe_id=f"{drawing_norm}-{size}-{commodity_code}-AGG")

    def to_json(self) -> dict:
        return {"pipe_id": self.pipe_id}

    def render(self) -> str:
        return self.pipe_id


IdentityKey = Union[StandardKey, InstrumentKey, SpoolKey, FieldWeldKey, AggregateKey]

# Every ComponentType must appear here; tests assert coverage.
KEY_SHAPES: dict[ComponentType, type] = {
    ComponentType.SPOOL: SpoolKey,
    ComponentType.FIELD_WELD: FieldWeldKey,
    ComponentType.INSTRUMENT: InstrumentKey,
    ComponentType.PIPE: AggregateKey,
    ComponentType.THREADED_PIPE: AggregateKey,
    ComponentType.VALVE: StandardKey,
    ComponentType.SUPPORT: StandardKey,
    ComponentType.FITTING: StandardKey,
    ComponentType.FLANGE: StandardKey,
    ComponentType.TUBING: StandardKey,
    ComponentType.HOSE: StandardKey,
    ComponentType.MISC_COMPONENT: StandardKey,
}


def component_count(component_type: ComponentType, quantity: int) -> int:
    """Number of keys ``resolve_identity_keys`` yields for a row, without building them."""
    if quantity < 1:
        return 0
    if KEY_SHAPES[component_type] is StandardKey:
        return quantity
    return 1


def resolve_identity_keys(
    component_type: ComponentType,
    drawing: str,
    size: str | None,
    commodity_code: str,
    quantity: int,
) -> list[IdentityKey]:
    """Derive the identity keys one takeoff row produces.

    Drawing and size are normalized here; both normalizers are idempotent
    so already-normalized input is safe.

    Returns:
        One key for spool, field weld, instrument and aggregate types;
        ``quantity`` StandardKeys (seq 1..quantity) for every other type;
        an empty list when quantity is below 1.
    """
    if quantity < 1:
        return []

    drawing_norm = normalize_drawing(drawing)
    size_norm = normalize_size(size)
    code = commodity_code.strip()
    shape = KEY_SHAPES[component_type]

    if shape is SpoolKey:
        return [SpoolKey(spool_id=code)]
    if shape is FieldWeldKey:
        return [FieldWeldKey(weld_number=code)]
    if shape is InstrumentKey:
        return [InstrumentKey(drawing_norm=drawing_norm, commodity_code=code, size=size_norm)]
    if shape is AggregateKey:
        return [AggregateKey.build(drawing_norm, size_norm, code)]

    return [
        StandardKey(drawing_norm=drawing_norm, commodity_code=code, size=size_norm, seq=seq)
        for seq in range(1, quantity + 1)
    ]


def identity_key_from_json(component_type: ComponentType | str, data: dict) -> IdentityKey:
    """Rebuild a typed key from its persisted JSON form.

    Raises:
        ValueError: If the JSON does not match the shape for the type
    """
    if isinstance(component_type, str):
        parsed = ComponentType.parse(component_type)
        if parsed is None:
            raise ValueError(f"Unknown component type: {component_type!r}")
        component_type = parsed

    shape = KEY_SHAPES[component_type]
    try:
        if shape is SpoolKey:
            return SpoolKey(spool_id=str(data["spool_id"]))
        if shape is FieldWeldKey:
            return FieldWeldKey(weld_number=str(data["weld_number"]))
        if shape is AggregateKey:
            return AggregateKey(pipe_id=str(data["pipe_id"]))
        if shape is InstrumentKey:
            return InstrumentKey(
                drawing_norm=str(data["drawing_norm"]),
                commodity_code=str(data["commodity_code"]),
                size=str(data["size"]),
            )
        return StandardKey(
            drawing_norm=str(data["drawing_norm"]),
            commodity_code=str(data["commodity_code"]),
            size=str(data["size"]),
            seq=int(data["seq"]),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(
            f"Identity key {data!r} does not match the {shape.kind} shape for {component_type.value}"
        ) from e
