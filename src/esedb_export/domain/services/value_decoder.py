"""Byte-to-value decoder for engine cells.

The engine exposes about a dozen primitive wire types, but Windows Search
reuses a few of them (the 8-byte binary above all) for timestamps,
durations, sizes, identifiers and text alike. The wire type alone cannot
tell these apart, so the decoder consults the column name through an
injected ColumnVocabulary.

Binary dispatch precedence:
    1. size vocabulary            -> unsigned 64-bit integer
    2. FILETIME sentinel, len 8   -> big-endian FILETIME
    3. date vocabulary, "NN" name -> little-endian FILETIME
    4. date vocabulary            -> big-endian FILETIME
    5. duration vocabulary        -> "dd:hh:mm:ss (ticks)"
    6. importance marker          -> unsigned 64-bit integer
    7. file name column           -> UTF-16 text
    8. anything else              -> hex

Decoding never raises. A cell that cannot be converted is rendered as the
uppercase hex of its bytes.
"""

from __future__ import annotations

import codecs
import struct
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone

from esedb_export.domain.entities import DecodedValue, RawValue, Row
from esedb_export.domain.value_objects import (
    DEFAULT_VOCABULARY,
    FILE_ATTRIBUTE_FLAGS,
    FIXED_FORMATS,
    ColumnType,
    ColumnVocabulary,
    describe_file_attributes,
)
from esedb_export.infrastructure.logging import get_logger
from esedb_export.infrastructure.metrics import MetricsRegistry


logger = get_logger(__name__)

FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)
TICKS_PER_SECOND = 10_000_000

# Conversion failures that mean "not this interpretation" rather than a bug
BENIGN_ERRORS = (ValueError, OverflowError, struct.error, UnicodeDecodeError, LookupError)

NativeDateTime = Callable[[], "datetime | None"]


def to_hex(data: bytes) -> str:
    """Canonical hex rendering used for every fallback."""
    return data.hex().upper()


def filetime_to_string(ticks: int) -> str:
    """Format a FILETIME as 'dd/MM/yyyy HH:mm:ss.fffffff' (UTC).

    Raises:
        ValueError: If ticks is negative.
        OverflowError: If ticks is past the last representable date.
    """
    if ticks < 0:
        raise ValueError(f"negative FILETIME {ticks}")
    moment = FILETIME_EPOCH + timedelta(microseconds=ticks // 10)
    return f"{moment:%d/%m/%Y %H:%M:%S}.{ticks % TICKS_PER_SECOND:07d}"


def datetime_to_string(moment: datetime) -> str:
    """Format a datetime with the same seven-digit fraction as FILETIMEs."""
    return f"{moment:%d/%m/%Y %H:%M:%S}.{moment.microsecond * 10:07d}"


def ticks_to_duration(ticks: int) -> str:
    """Format a 100 ns tick count as 'dd:hh:mm:ss (ticks)'."""
    seconds, _ = divmod(ticks, TICKS_PER_SECOND)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    return f"{days:02d}:{hours:02d}:{minutes:02d}:{seconds:02d} ({ticks})"


def has_digit_prefix(name: str) -> bool:
    """Whether a name starts with two ASCII digits (property-store columns)."""
    return len(name) >= 2 and name[0] in "0123456789" and name[1] in "0123456789"


def codec_for(code_page: int) -> str:
    """Python codec for an engine code page; 0 means UTF-16."""
    if code_page in (0, 1200):
        return "utf-16-le"
    if code_page == 65001:
        return "utf-8"
    if code_page == 20127:
        return "ascii"
    return codecs.lookup(f"cp{code_page}").name


def _uint64(data: bytes) -> int:
    return struct.unpack("<Q", data)[0]


class ValueDecoder:
    """Convert raw column bytes into typed display values.

    Usage:
        decoder = ValueDecoder()
        decoder.decode(b"\\x00\\xe8\\x76\\x48\\x17\\x00\\x00\\x00",
                       ColumnType.BINARY, "13F-System_Size", 8)
        # -> 100000000000
    """

    def __init__(
        self,
        vocabulary: ColumnVocabulary = DEFAULT_VOCABULARY,
        attribute_flags: Mapping[int, str] = FILE_ATTRIBUTE_FLAGS,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the decoder.

        Args:
            vocabulary: Column-name vocabularies steering binary dispatch.
            attribute_flags: Bit to name table for file attribute columns.
            metrics: Optional registry counting hex fallbacks.
        """
        self._vocabulary = vocabulary
        self._attribute_flags = attribute_flags
        self._metrics = metrics

    @property
    def vocabulary(self) -> ColumnVocabulary:
        return self._vocabulary

    def decode(
        self,
        data: bytes | None,
        column_type: ColumnType,
        column_name: str,
        max_length: int = 0,
        code_page: int = 0,
        native_datetime: NativeDateTime | None = None,
    ) -> DecodedValue:
        """Decode one cell.

        Args:
            data: Raw bytes, or None for a null cell.
            column_type: Engine wire type of the column.
            column_name: Column name, used to disambiguate binaries.
            max_length: Declared maximum length of the column.
            code_page: Code page reported for text columns.
            native_datetime: Engine accessor for this cell's DateTime value.

        Returns:
            The decoded value, None for null input, or the hex rendering of
            the bytes when no conversion applies.
        """
        if data is None:
            return None
        try:
            return self._dispatch(
                bytes(data), column_type, column_name, max_length, code_page, native_datetime
            )
        except Exception as e:
            logger.debug(
                "decode_fallback",
                column=column_name,
                column_type=column_type.name,
                error=repr(e),
            )
            return self._fallback(data, column_type)

    def decode_raw(
        self, raw: RawValue, native_datetime: NativeDateTime | None = None
    ) -> DecodedValue:
        """Decode a RawValue."""
        return self.decode(
            raw.data,
            raw.column_type,
            raw.column_name,
            raw.max_length,
            raw.code_page,
            native_datetime,
        )

    def annotate_file_attributes(self, row: Row) -> Row:
        """Replace integer file attribute values with their flag names."""
        for name in list(row):
            value = row[name]
            if (
                self._vocabulary.is_file_attributes(name)
                and isinstance(value, int)
                and not isinstance(value, bool)
            ):
                row[name] = describe_file_attributes(value, self._attribute_flags)
        return row

    def _fallback(self, data: bytes, column_type: ColumnType) -> str:
        if self._metrics is not None:
            self._metrics.decode_fallbacks_total.labels(column_type=column_type.name).inc()
        return to_hex(bytes(data))

    def _dispatch(
        self,
        data: bytes,
        column_type: ColumnType,
        name: str,
        max_length: int,
        code_page: int,
        native_datetime: NativeDateTime | None,
    ) -> DecodedValue:
        if column_type == ColumnType.BINARY:
            return self._decode_binary(data, name, max_length)
        if column_type == ColumnType.LONG_BINARY:
            return self._decode_long_binary(data, name)
        if column_type.is_text:
            return self._decode_text(data, code_page)
        if column_type == ColumnType.DATE_TIME:
            return self._decode_datetime(data, native_datetime)
        if column_type == ColumnType.BIT:
            if len(data) != 1:
                raise ValueError(f"bit column holds {len(data)} bytes")
            return data[0] != 0
        if column_type == ColumnType.GUID:
            return uuid.UUID(bytes_le=data)
        fmt = FIXED_FORMATS.get(column_type)
        if fmt is not None:
            return struct.unpack(fmt, data)[0]
        return self._fallback(data, column_type)

    def _decode_binary(self, data: bytes, name: str, max_length: int) -> DecodedValue:
        vocabulary = self._vocabulary

        if name in vocabulary.size_columns:
            try:
                return _uint64(data)
            except struct.error:
                return self._fallback(data, ColumnType.BINARY)

        if name == vocabulary.filetime_sentinel and max_length == 8:
            try:
                return filetime_to_string(int.from_bytes(data, "big"))
            except BENIGN_ERRORS:
                return self._fallback(data, ColumnType.BINARY)

        if name in vocabulary.date_columns:
            try:
                if has_digit_prefix(name):
                    return filetime_to_string(_uint64(data))
                if len(data) != 8:
                    raise ValueError(f"FILETIME needs 8 bytes, got {len(data)}")
                return filetime_to_string(int.from_bytes(data, "big"))
            except BENIGN_ERRORS:
                return self._fallback(data, ColumnType.BINARY)

        if name in vocabulary.duration_columns:
            try:
                return ticks_to_duration(_uint64(data))
            except struct.error:
                return self._fallback(data, ColumnType.BINARY)

        if vocabulary.is_importance(name):
            try:
                return _uint64(data)
            except struct.error:
                return self._fallback(data, ColumnType.BINARY)

        if name == vocabulary.filename_column:
            return data.decode("utf-16-le").rstrip("\x00")

        return to_hex(data)

    def _decode_long_binary(self, data: bytes, name: str) -> DecodedValue:
        if name not in self._vocabulary.unicode_blob_columns:
            return to_hex(data)
        encoding = "utf-16-le" if has_digit_prefix(name) else "utf-8"
        try:
            return data.decode(encoding).rstrip("\x00")
        except UnicodeDecodeError:
            return self._fallback(data, ColumnType.LONG_BINARY)

    def _decode_text(self, data: bytes, code_page: int) -> DecodedValue:
        return data.decode(codec_for(code_page)).rstrip("\x00")

    def _decode_datetime(
        self, data: bytes, native_datetime: NativeDateTime | None
    ) -> DecodedValue:
        try:
            return filetime_to_string(struct.unpack("<q", data)[0])
        except BENIGN_ERRORS:
            if native_datetime is None:
                return self._fallback(data, ColumnType.DATE_TIME)
        moment = native_datetime()
        return None if moment is None else datetime_to_string(moment)
