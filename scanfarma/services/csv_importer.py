"""
CSV sale importer.

Accepts the sales export of an external stock system: one sale per line,
``barcode,quantity,date`` separated by commas or semicolons, with an optional
header. Rows are validated one by one and each valid row is sent through the
FIFO sale processor; a bad row is reported and never aborts the import.
"""
import hashlib
import logging
import re
from datetime import date
from typing import Dict, List, Optional, Tuple
from uuid import UUID

import chardet
from dateutil import parser as date_parser
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scanfarma.core.calendar_dates import as_calendar_date, today_for
from scanfarma.core.errors import (
    DuplicateImportError,
    PersistenceError,
    ScanFarmaError,
    ValidationError,
)
from scanfarma.models.sale_import import SaleImport
from scanfarma.services.batch_store import positive_int
from scanfarma.services.sales import FifoSaleProcessor

logger = logging.getLogger(__name__)

SEPARATORS = re.compile(r"[,;]")
HEADER_MARKERS = ("barcode", "date", "quantity")
DAY_FIRST_DATE = re.compile(r"^\d{1,2}[/.\-]\d{1,2}[/.\-]\d{2,4}$")


class SaleRow(BaseModel):
    """A raw sale line, before validation."""
    barcode: str
    quantity: str
    date: str
    row_number: int


class RowIssue(BaseModel):
    """An error (row skipped) or a warning (row applied) for one CSV line."""
    row_number: int
    barcode: str
    error: Optional[str] = None
    warning: Optional[str] = None


class ImportResult(BaseModel):
    """Outcome of importing a batch of sale rows."""
    success: bool = True
    processed: int = 0
    total_rows: int = 0
    errors: List[RowIssue] = Field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.errors if issue.error)

    @property
    def warning_count(self) -> int:
        return sum(1 for issue in self.errors if issue.warning)


def parse_csv(text: str, default_date: Optional[date] = None) -> List[SaleRow]:
    """
    Split CSV text into sale rows.

    Lines are split on "," or ";". The first line is treated as a header when
    it mentions barcode, date or quantity. Rows with two fields are dated
    ``default_date`` (today in UTC when omitted); a one-field row is kept with an
    empty quantity so that validation reports it.

    Args:
        text: Decoded file content
        default_date: Date for rows without a date column

    Returns:
        List of SaleRow with 1-based line numbers
    """
    lines = text.strip().splitlines()
    if not lines:
        return []

    start = 1 if any(marker in lines[0].lower() for marker in HEADER_MARKERS) else 0
    fallback_date = (default_date or today_for(None)).isoformat()

    rows = []
    for index in range(start, len(lines)):
        line = lines[index].strip()
        if not line:
            continue

        parts = [part.strip() for part in SEPARATORS.split(line)]
        if len(parts) >= 3:
            barcode, quantity, sale_date = parts[0], parts[1], parts[2]
        elif len(parts) == 2:
            barcode, quantity, sale_date = parts[0], parts[1], fallback_date
        else:
            barcode, quantity, sale_date = parts[0], "", fallback_date

        rows.append(SaleRow(barcode=barcode, quantity=quantity, date=sale_date, row_number=index + 1))

    return rows


def parse_sale_date(value: str) -> date:
    """
    Parse a sale date: ISO first, then day-first formats via python-dateutil.

    Only full day/month/year values reach dateutil, which would otherwise
    fill missing parts from the current date.

    Raises:
        ValidationError: if the value is not a real calendar date
    """
    try:
        return as_calendar_date(value, field="date")
    except ValidationError:
        pass

    if not DAY_FIRST_DATE.match(value.strip()):
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD or DD/MM/YYYY", field="date")

    try:
        return date_parser.parse(value, dayfirst=True).date()
    except (ValueError, OverflowError):
        raise ValidationError(f"Invalid date {value!r}", field="date")


def detect_encoding(file_bytes: bytes) -> str:
    """
    Detect file encoding using chardet.

    Returns:
        Normalized encoding name (utf-8, iso-8859-1, windows-1252, ...)
    """
    result = chardet.detect(file_bytes)
    encoding = result['encoding'] or 'utf-8'

    encoding_lower = encoding.lower()
    if 'utf' in encoding_lower or 'ascii' in encoding_lower:
        return 'utf-8'
    elif 'iso-8859' in encoding_lower or 'latin' in encoding_lower:
        return 'iso-8859-1'
    elif 'windows' in encoding_lower or 'cp125' in encoding_lower:
        return 'windows-1252'

    return encoding


def decode_upload(file_bytes: bytes) -> str:
    """Decode an uploaded file, dropping a UTF-8 byte order mark if present."""
    encoding = detect_encoding(file_bytes)
    if encoding == 'utf-8':
        encoding = 'utf-8-sig'
    try:
        return file_bytes.decode(encoding)
    except (UnicodeDecodeError, LookupError):
        logger.warning(f"Could not decode upload as {encoding}, replacing invalid bytes")
        return file_bytes.decode('utf-8-sig', errors='replace')


class CSVSaleImporter:
    """
    Imports sale files for one pharmacy.

    Features:
    - Per-row validation with errors collected, never aborting
    - Shortfall warnings from the FIFO processor reported per row
    - File-level deduplication (SHA-256 of the raw upload)
    - Import log kept in the sale_imports table
    """

    def __init__(self, db: Session, pharmacy_id: UUID, pharmacy_timezone: Optional[str] = None):
        self.db = db
        self.pharmacy_id = pharmacy_id
        self.processor = FifoSaleProcessor(db, pharmacy_id, pharmacy_timezone)

    def compute_file_hash(self, file_bytes: bytes) -> str:
        """SHA-256 of the raw file content."""
        return hashlib.sha256(file_bytes).hexdigest()

    def check_file_duplicate(self, file_hash: str) -> Optional[UUID]:
        """
        Find an earlier import of the same file that applied sales.

        Returns:
            Import ID if duplicate found, None otherwise
        """
        stmt = select(SaleImport.id).where(
            SaleImport.pharmacy_id == self.pharmacy_id,
            SaleImport.file_hash == file_hash,
            SaleImport.status.in_(("COMPLETED", "PARTIAL")),
        ).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    def validate_row(self, row: SaleRow) -> Tuple[int, date]:
        """
        Check a raw row.

        Returns:
            Tuple of (quantity, sale_date)

        Raises:
            ValidationError: Missing field, bad quantity or bad date
        """
        if not row.barcode or not row.quantity or not row.date:
            raise ValidationError("Incomplete data: barcode, quantity and date are required")
        try:
            quantity = positive_int(row.quantity, "quantity")
        except ValidationError:
            raise ValidationError(f"Invalid quantity {row.quantity!r}", field="quantity")
        return quantity, parse_sale_date(row.date)

    def import_sales(self, rows: List[SaleRow]) -> ImportResult:
        """
        Apply parsed rows as csv-sourced sales.

        A row whose sale succeeded with a shortfall warning counts as
        processed and is listed with its warning. A row that failed validation
        or matched no product is listed with its error and not counted.
        success is True when no row has an error.
        """
        result = ImportResult(total_rows=len(rows))

        for row in rows:
            try:
                quantity, sale_date = self.validate_row(row)
                sale = self.processor.process_sale(row.barcode, quantity, sale_date, "csv")
            except ScanFarmaError as e:
                result.errors.append(RowIssue(row_number=row.row_number, barcode=row.barcode, error=e.message))
                continue

            if not sale.success:
                result.errors.append(RowIssue(row_number=row.row_number, barcode=row.barcode, error=sale.error))
                continue

            result.processed += 1
            if sale.warning:
                result.errors.append(RowIssue(row_number=row.row_number, barcode=row.barcode, warning=sale.warning))

        result.success = result.error_count == 0
        logger.info(
            f"Imported {result.processed}/{result.total_rows} sale rows for pharmacy {self.pharmacy_id} "
            f"({result.error_count} errors, {result.warning_count} warnings)"
        )
        return result

    def import_upload(self, file_bytes: bytes) -> Tuple[UUID, ImportResult]:
        """
        Decode, deduplicate, parse and import an uploaded sales file.

        Args:
            file_bytes: Raw uploaded file

        Returns:
            Tuple of (sale_import_id, ImportResult)

        Raises:
            DuplicateImportError: This file was already imported
            ValidationError: Undecodable or empty file
        """
        file_hash = self.compute_file_hash(file_bytes)
        duplicate_id = self.check_file_duplicate(file_hash)
        if duplicate_id is not None:
            raise DuplicateImportError(f"This file was already imported (import {duplicate_id})")

        text = decode_upload(file_bytes)
        rows = parse_csv(text, default_date=self.processor.today())
        if not rows:
            raise ValidationError("File contains no sale rows", field="file")

        try:
            sale_import = SaleImport(
                pharmacy_id=self.pharmacy_id,
                status="PROCESSING",
                file_hash=file_hash,
            )
            self.db.add(sale_import)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not create import record: {e}", exc_info=True)
            raise PersistenceError() from e

        result = self.import_sales(rows)

        if result.success:
            status = "COMPLETED"
        elif result.processed > 0:
            status = "PARTIAL"
        else:
            status = "FAILED"

        try:
            sale_import.status = status
            sale_import.rows_processed = result.processed
            sale_import.errors = [issue.model_dump(exclude_none=True) for issue in result.errors]
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not finalize import {sale_import.id}: {e}", exc_info=True)
            raise PersistenceError() from e

        return sale_import.id, result

    def recent_imports(self, limit: int = 10) -> List[Dict]:
        stmt = (
            select(SaleImport)
            .where(SaleImport.pharmacy_id == self.pharmacy_id)
            .order_by(SaleImport.created_at.desc())
            .limit(limit)
        )
        return [
            {
                "id": str(record.id),
                "status": record.status,
                "rows_processed": record.rows_processed,
                "error_count": len(record.errors or []),
                "created_at": record.created_at.isoformat() if record.created_at else None,
            }
            for record in self.db.execute(stmt).scalars().all()
        ]
