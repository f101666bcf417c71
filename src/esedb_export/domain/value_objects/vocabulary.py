"""Column-name vocabularies used to interpret overloaded wire types.

Windows Search stores timestamps, durations, sizes and free text in the same
handful of engine types (most often an 8-byte binary). The only reliable
signal for what a cell holds is the column name, so these tables are the
domain knowledge of the decoder.

The vocabularies are knowingly incomplete. Property-store schemas differ
between Windows builds, and unknown names fall back to a hex rendering.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ColumnVocabulary:
    """Immutable set of column-name vocabularies injected into the decoder.

    Attributes:
        size_columns: 8-byte binaries holding an unsigned 64-bit size.
        filetime_sentinel: Single 8-byte binary column holding a big-endian FILETIME.
        date_columns: Binaries holding a FILETIME. Names beginning with two
            digits (property-store columns) are little-endian, others big-endian.
        duration_columns: Binaries holding a 100 ns tick count.
        importance_marker: Substring marking importance/priority integers.
        filename_column: Binary column holding a UTF-16 file name.
        unicode_blob_columns: Long binaries holding text.
        file_attributes_marker: Suffix of integer columns holding file attribute flags.
    """

    size_columns: frozenset[str] = field(default_factory=frozenset)
    filetime_sentinel: str = "LastModified"
    date_columns: frozenset[str] = field(default_factory=frozenset)
    duration_columns: frozenset[str] = field(default_factory=frozenset)
    importance_marker: str = "importance"
    filename_column: str = "FileName"
    unicode_blob_columns: frozenset[str] = field(default_factory=frozenset)
    file_attributes_marker: str = "System_FileAttributes"

    def is_importance(self, name: str) -> bool:
        """Fuzzy match for importance/priority columns."""
        return self.importance_marker.lower() in name.lower()

    def is_file_attributes(self, name: str) -> bool:
        return name == self.file_attributes_marker or name.endswith(
            "-" + self.file_attributes_marker
        )


DEFAULT_VOCABULARY = ColumnVocabulary(
    size_columns=frozenset({
        "13F-System_Size",
        "4460-System_Search_TotalSize",
        "4520-System_FileAllocationSize",
        "4601-System_Message_Size",
        "Size",
        "System_Size",
    }),
    filetime_sentinel="LastModified",
    date_columns=frozenset({
        "15F-System_DateModified",
        "16F-System_DateCreated",
        "17F-System_DateAccessed",
        "4364-System_DateImported",
        "4368-System_ItemDate",
        "4392-System_Search_GatherTime",
        "4403-System_Message_DateReceived",
        "4404-System_Message_DateSent",
        "4437-System_Document_DateCreated",
        "4438-System_Document_DateSaved",
        "4439-System_Document_DatePrinted",
        "4634-System_Search_LastIndexedTime",
        "CrawlTime",
        "LastCrawled",
        "LastAccessed",
        "StartTime",
        "EndTime",
        "System_DateModified",
        "System_DateCreated",
        "System_DateAccessed",
    }),
    duration_columns=frozenset({
        "4412-System_Media_Duration",
        "4629-System_Search_LastIndexedTotalTime",
        "4640-System_Video_TotalBitrate_Duration",
        "System_Media_Duration",
        "TotalTime",
    }),
    importance_marker="importance",
    filename_column="FileName",
    unicode_blob_columns=frozenset({
        "4184-System_ItemNameDisplay",
        "4443-System_ItemPathDisplay",
        "4444-System_ItemFolderPathDisplay",
        "4447-System_ItemUrl",
        "4624-System_Search_AutoSummary",
        "4625-System_Title",
        "4631-System_Kind",
        "4632-System_ItemType",
        "4633-System_Search_Store",
        "Scope",
        "Url",
        "URL",
    }),
    file_attributes_marker="System_FileAttributes",
)
