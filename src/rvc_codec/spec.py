"""
rvc_codec.spec

Loading and lookup of the RV-C specification table.

The specification document is a YAML mapping of five-hex-digit DGN keys to
decoder definitions (display name, optional alias, optional DGN range and an
ordered list of parameters). Loading validates the document and produces an
immutable SpecTable that is built once at startup and handed to everything
that needs it.

This module is responsible for:
- Parsing the document with every scalar kept as a string, so value-table
  keys such as "00" or "01" keep their fixed-width spelling.
- Rejecting duplicate keys, malformed byte/bit ranges, unknown types or
  units, unsupported unit widths, dangling aliases and overlapping fields.
- Resolving DGNs exactly, by range, or by display name.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from importlib import resources
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

import yaml

from common.models import SpecInfo
from rvc_codec.exceptions import SpecIntegrityDefect
from rvc_codec.units import FieldType, Unit, sentinel_for, supports

logger = logging.getLogger(__name__)

DGN_PATTERN = re.compile(r"^[0-9A-Fa-f]{5}$")
_RANGE_PATTERN = re.compile(r"^\s*(\d+)\s*(?:-\s*(\d+)\s*)?$")
_DGN_RANGE_PATTERN = re.compile(r"^\s*([0-9A-Fa-f]+)\s*-\s*([0-9A-Fa-f]+)\s*$")

_KEPT_RESOLVERS = ("tag:yaml.org,2002:null", "tag:yaml.org,2002:merge")


def _default_paths():
    """
    Determine the default path for the rvc spec document bundled as package data.
    """
    cfg_dir = resources.files(__package__) / "config"
    return str(cfg_dir / "rvc-spec.yml")


class _SpecLoader(yaml.SafeLoader):
    """SafeLoader that keeps scalars as strings and rejects duplicate mapping keys."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _ in node.value:
            if key_node.tag == "tag:yaml.org,2002:merge":
                continue
            key = self.construct_object(key_node, deep=deep)
            if key in seen:
                raise SpecIntegrityDefect(
                    f"Duplicate key '{key}' at line {key_node.start_mark.line + 1}"
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


_SpecLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag in _KEPT_RESOLVERS]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


@dataclass(frozen=True)
class FieldDefinition:
    """One parameter of a decoder definition."""

    name: str
    byte_start: int
    byte_end: int
    bit_start: Optional[int] = None
    bit_end: Optional[int] = None
    type: FieldType = FieldType.UINT
    unit: Optional[Unit] = None
    values: Optional[Mapping[str, str]] = field(default=None, compare=False)

    @property
    def has_bits(self) -> bool:
        return self.bit_start is not None

    @property
    def byte_length(self) -> int:
        return self.byte_end - self.byte_start + 1

    @property
    def width(self) -> int:
        """Width of the field's value in bits."""
        if self.has_bits:
            return self.bit_end - self.bit_start + 1
        return self.byte_length * 8

    @property
    def sentinel(self) -> int:
        return sentinel_for(self.width)

    def claimed_masks(self) -> Dict[int, int]:
        """Byte position -> bit mask of the bits this field occupies."""
        if self.has_bits:
            return {self.byte_start: sentinel_for(self.width) << self.bit_start}
        return {pos: 0xFF for pos in range(self.byte_start, self.byte_end + 1)}


@dataclass(frozen=True)
class DecoderDefinition:
    """A specification table entry."""

    dgn: str
    name: str
    fields: Tuple[FieldDefinition, ...] = ()
    alias: Optional[str] = None
    dgn_range: Optional[Tuple[int, int]] = None

    def covers(self, dgn_value: int) -> bool:
        if self.dgn_range is None:
            return False
        start, end = self.dgn_range
        return start <= dgn_value <= end


class SpecTable:
    """
    Immutable mapping of DGN -> DecoderDefinition with the lookups the codec needs.
    """

    def __init__(
        self,
        decoders: Mapping[str, DecoderDefinition],
        api_version: Optional[str] = None,
        source: Optional[str] = None,
    ):
        self._decoders = MappingProxyType(dict(decoders))
        self._by_name = MappingProxyType(
            {decoder.name.lower(): decoder for decoder in self._decoders.values()}
        )
        self._ranged = tuple(
            self._decoders[key]
            for key in sorted(self._decoders)
            if self._decoders[key].dgn_range is not None
        )
        self.api_version = api_version
        self.source = source

    def __len__(self) -> int:
        return len(self._decoders)

    def __contains__(self, dgn: object) -> bool:
        return isinstance(dgn, str) and dgn.upper() in self._decoders

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._decoders))

    @property
    def decoders(self) -> Mapping[str, DecoderDefinition]:
        return self._decoders

    def get(self, dgn: str) -> Optional[DecoderDefinition]:
        return self._decoders.get(dgn.upper())

    def resolve(self, dgn: str) -> Optional[DecoderDefinition]:
        """Exact match first, then the first range-bounded entry containing `dgn`."""
        decoder = self.get(dgn)
        if decoder is not None:
            return decoder
        try:
            dgn_value = int(dgn, 16)
        except ValueError:
            return None
        for candidate in self._ranged:
            if candidate.covers(dgn_value):
                return candidate
        return None

    def by_name(self, name: str) -> Optional[DecoderDefinition]:
        return self._by_name.get(name.lower())

    def lookup(self, target: str) -> Optional[DecoderDefinition]:
        """Resolve an encode target given as a display name or an exact DGN key."""
        decoder = self.by_name(target)
        if decoder is None and DGN_PATTERN.match(target):
            decoder = self.get(target)
        return decoder

    def effective_fields(self, decoder: DecoderDefinition) -> Tuple[FieldDefinition, ...]:
        """Alias fields first, then the decoder's own fields."""
        if decoder.alias:
            aliased = self._decoders.get(decoder.alias)
            if aliased is not None:
                return aliased.fields + decoder.fields
        return decoder.fields

    def claimed_masks(self, decoder: DecoderDefinition) -> Dict[int, int]:
        return claimed_masks(self.effective_fields(decoder))

    def info(self) -> SpecInfo:
        return SpecInfo(
            api_version=self.api_version,
            filename=os.path.basename(self.source) if self.source else None,
            dgn_count=len(self),
            pending_count=sum(
                1 for decoder in self._decoders.values() if not self.effective_fields(decoder)
            ),
        )


def claimed_masks(fields) -> Dict[int, int]:
    """Union of the claimed bit masks of `fields`, per byte position."""
    masks: Dict[int, int] = {}
    for field_def in fields:
        for pos, mask in field_def.claimed_masks().items():
            masks[pos] = masks.get(pos, 0) | mask
    return masks


def _parse_range(text: Any, limit: int, what: str, where: str) -> Tuple[int, int]:
    match = _RANGE_PATTERN.match(str(text))
    if not match:
        raise SpecIntegrityDefect(f"{where}: malformed {what} range '{text}'")
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) is not None else start
    if start > end or end > limit:
        raise SpecIntegrityDefect(f"{where}: {what} range '{text}' is outside 0-{limit}")
    return start, end


def _parse_field(raw: Any, where: str) -> FieldDefinition:
    if not isinstance(raw, dict) or not raw.get("name"):
        raise SpecIntegrityDefect(f"{where}: parameter must be a mapping with a name")
    name = str(raw["name"])
    where = f"{where} parameter '{name}'"
    if raw.get("byte") is None:
        raise SpecIntegrityDefect(f"{where}: missing byte range")
    byte_start, byte_end = _parse_range(raw["byte"], 7, "byte", where)

    bit_start = bit_end = None
    if raw.get("bit") is not None:
        bit_start, bit_end = _parse_range(raw["bit"], 7, "bit", where)

    try:
        field_type = FieldType.parse(raw.get("type") or "uint")
        unit = Unit.parse(raw["unit"]) if raw.get("unit") is not None else None
    except ValueError as e:
        raise SpecIntegrityDefect(f"{where}: {e}") from e

    values = None
    if raw.get("values") is not None:
        if not isinstance(raw["values"], dict):
            raise SpecIntegrityDefect(f"{where}: values must be a mapping")
        values = MappingProxyType({str(k): str(v) for k, v in raw["values"].items()})

    field_def = FieldDefinition(
        name=name,
        byte_start=byte_start,
        byte_end=byte_end,
        bit_start=bit_start,
        bit_end=bit_end,
        type=field_type,
        unit=unit,
        values=values,
    )
    if unit is not None and not supports(unit, field_def.width):
        raise SpecIntegrityDefect(
            f"{where}: unit '{unit.value}' has no {field_def.width}-bit conversion"
        )
    return field_def


def _parse_decoder(dgn: str, raw: Any) -> DecoderDefinition:
    where = f"DGN {dgn}"
    if not isinstance(raw, dict):
        raise SpecIntegrityDefect(f"{where}: decoder definition must be a mapping")
    parameters = raw.get("parameters") or []
    if not isinstance(parameters, list):
        raise SpecIntegrityDefect(f"{where}: parameters must be a list")

    dgn_range = None
    if raw.get("range") is not None:
        match = _DGN_RANGE_PATTERN.match(str(raw["range"]))
        if not match:
            raise SpecIntegrityDefect(f"{where}: malformed DGN range '{raw['range']}'")
        dgn_range = (int(match.group(1), 16), int(match.group(2), 16))
        if dgn_range[0] > dgn_range[1]:
            raise SpecIntegrityDefect(f"{where}: reversed DGN range '{raw['range']}'")

    alias = str(raw["alias"]).upper() if raw.get("alias") is not None else None
    return DecoderDefinition(
        dgn=dgn,
        name=str(raw.get("name") or f"UNKNOWN-{dgn}"),
        fields=tuple(_parse_field(p, where) for p in parameters),
        alias=alias,
        dgn_range=dgn_range,
    )


def _check_overlaps(table: SpecTable) -> None:
    for dgn, decoder in table.decoders.items():
        owners: Dict[int, list] = {}
        for field_def in table.effective_fields(decoder):
            for pos, mask in field_def.claimed_masks().items():
                for other_name, other_mask in owners.get(pos, []):
                    if other_mask & mask and other_name != field_def.name:
                        raise SpecIntegrityDefect(
                            f"DGN {dgn}: parameters '{other_name}' and '{field_def.name}' "
                            f"overlap in byte {pos}"
                        )
                owners.setdefault(pos, []).append((field_def.name, mask))


def build_spec_table(document: Mapping[str, Any], source: Optional[str] = None) -> SpecTable:
    """Validate a parsed specification document and build the SpecTable."""
    if not isinstance(document, Mapping):
        raise SpecIntegrityDefect("Specification document must be a mapping")

    decoders: Dict[str, DecoderDefinition] = {}
    for key, raw in document.items():
        key_str = str(key)
        if not DGN_PATTERN.match(key_str):
            if key_str != "API_VERSION":
                logger.debug(f"Ignoring non-DGN key in spec document: {key_str}")
            continue
        dgn = key_str.upper()
        if dgn in decoders:
            raise SpecIntegrityDefect(f"Duplicate DGN {dgn} (keys differ only in case)")
        decoders[dgn] = _parse_decoder(dgn, raw)

    for dgn, decoder in decoders.items():
        if decoder.alias and decoder.alias not in decoders:
            raise SpecIntegrityDefect(f"DGN {dgn}: alias {decoder.alias} is not defined")

    api_version = document.get("API_VERSION")
    table = SpecTable(
        decoders,
        api_version=str(api_version) if api_version is not None else None,
        source=source,
    )
    _check_overlaps(table)
    return table


def load_spec_table(path: Optional[str] = None) -> SpecTable:
    """
    Load the specification document at `path` (or the bundled default).

    Raises:
        OSError: the document cannot be read.
        SpecIntegrityDefect: the document is malformed or ambiguous.
    """
    spec_path = path or _default_paths()
    logger.info(f"Loading RV-C spec from: {spec_path}")
    with open(spec_path) as f:
        try:
            document = yaml.load(f, Loader=_SpecLoader)
        except yaml.YAMLError as e:
            raise SpecIntegrityDefect(f"Cannot parse spec document {spec_path}: {e}") from e

    table = build_spec_table(document or {}, source=spec_path)
    logger.info(
        f"Loaded {len(table)} decoder definitions (API_VERSION={table.api_version}) "
        f"from {spec_path}"
    )
    return table
