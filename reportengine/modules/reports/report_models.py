"""
Data models for report definitions.

Definitions are loaded read-only from the metadata store. They are frozen and
hold their columns/filters as tuples so a cached definition can be shared
between concurrent requests without copying.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class DataType(str, Enum):
    """Column data type; drives cell formatting"""
    STRING = "string"
    NUMBER = "number"
    CURRENCY = "currency"
    DATE = "date"

    @classmethod
    def parse(cls, value: Optional[str]) -> "DataType":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.STRING


class OptionsSource(str, Enum):
    """Where a filter's selectable values come from"""
    STATIC = "static"  # JSON array literal in static_options
    QUERY = "query"  # SQL SELECT in options_query
    NONE = "none"

    @classmethod
    def parse(cls, value: Optional[str]) -> "OptionsSource":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.NONE


DATERANGE = "daterange"


@dataclass(frozen=True)
class ReportColumn:
    field_name: str
    display_name: str
    data_type: DataType = DataType.STRING
    alignment: str = "left"
    width: Optional[int] = None  # pixel width hint
    sort_order: int = 0
    column_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fieldName": self.field_name,
            "displayName": self.display_name,
            "dataType": self.data_type.value,
            "alignment": self.alignment,
            "width": self.width,
            "sortOrder": self.sort_order,
        }


@dataclass(frozen=True)
class ReportFilter:
    field_name: str
    filter_type: str
    sql_condition: str
    display_name: Optional[str] = None
    options_source: OptionsSource = OptionsSource.NONE
    static_options: Optional[str] = None
    options_query: Optional[str] = None
    sort_order: int = 0
    filter_id: Optional[int] = None

    @property
    def is_daterange(self) -> bool:
        return self.filter_type == DATERANGE

    @property
    def placeholder_count(self) -> int:
        """Number of bind placeholders the condition must carry for this filter type."""
        return 2 if self.is_daterange else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fieldName": self.field_name,
            "displayName": self.display_name or self.field_name,
            "filterType": self.filter_type,
            "optionsSource": self.options_source.value,
            "sortOrder": self.sort_order,
        }


@dataclass(frozen=True)
class ReportSummary:
    """Listing row for the reports index."""
    report_id: int
    code: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    category: Optional[str] = None
    permission_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportId": self.report_id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "color": self.color,
            "category": self.category,
            "permissionCode": self.permission_code,
        }


@dataclass(frozen=True)
class ReportDefinition:
    report_id: int
    code: str
    name: str
    base_query: str
    description: Optional[str] = None
    summary_calculations: Optional[str] = None
    export_sheet_name: Optional[str] = None
    is_active: bool = True
    is_public: bool = True
    category: Optional[str] = None
    sort_order: int = 0
    permission_code: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    columns: Tuple[ReportColumn, ...] = field(default_factory=tuple)
    filters: Tuple[ReportFilter, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing metadata. The SQL and calculation script stay server side."""
        return {
            "reportId": self.report_id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "icon": self.icon,
            "color": self.color,
            "permissionCode": self.permission_code,
            "exportSheetName": self.export_sheet_name,
            "hasSummary": bool((self.summary_calculations or "").strip()),
            "columns": [column.to_dict() for column in self.columns],
            "filters": [report_filter.to_dict() for report_filter in self.filters],
        }


@dataclass(frozen=True)
class ReportBranding:
    """Organization details printed in export headers."""
    company_name: str = "Company Name"
    company_logo: Optional[str] = None
    company_address: str = ""
    company_phone: str = ""
