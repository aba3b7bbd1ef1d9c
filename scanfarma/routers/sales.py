"""
Sales router: single sales, manual deductions and CSV sale imports.
"""
import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from scanfarma.core.deps import get_current_pharmacy
from scanfarma.db.session import get_db
from scanfarma.models.pharmacy import Pharmacy
from scanfarma.schemas.stock import ImportResponse, ManualDeduction, SaleCreate
from scanfarma.services.csv_importer import CSVSaleImporter, decode_upload, parse_csv
from scanfarma.services.sales import FifoSaleProcessor, SaleResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sales", tags=["sales"])

ALLOWED_EXTENSIONS = ('.csv', '.txt')


@router.post("", response_model=SaleResult)
def record_sale(
    sale: SaleCreate,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """
    Record a sale and deduct it from the batches closest to expiration.

    An unknown barcode is still logged and answers success=false with
    error "product_not_found". Insufficient stock answers success=true with
    a warning naming the shortfall.
    """
    processor = FifoSaleProcessor(db, pharmacy.id, pharmacy.timezone)
    return processor.process_sale(
        sale.barcode,
        sale.quantity,
        sale.sale_date,
        sale.source,
        sale.external_ref,
    )


@router.post("/manual", response_model=SaleResult)
def manual_deduction(
    deduction: ManualDeduction,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Take units off stock today without an external sale record."""
    processor = FifoSaleProcessor(db, pharmacy.id, pharmacy.timezone)
    return processor.manual_deduction(deduction.barcode, deduction.quantity)


@router.post("/preview-csv")
async def preview_csv(
    file: UploadFile = File(...),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """
    Parse a sales file without applying it.

    Returns the first 10 rows as they would be imported.
    """
    if not file.filename or not file.filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be a CSV"
        )

    content = await file.read()
    processor = FifoSaleProcessor(db, pharmacy.id, pharmacy.timezone)
    rows = parse_csv(decode_upload(content), default_date=processor.today())
    return {
        "total_rows": len(rows),
        "rows": [row.model_dump() for row in rows[:10]],
    }


@router.post("/import", response_model=ImportResponse)
async def import_sales(
    file: UploadFile = File(...),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """
    Import a sales file (barcode,quantity,date per line).

    Every row is processed independently; failed rows are listed in errors
    and never stop the import. The same file cannot be imported twice.
    """
    if not file.filename or not file.filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be a CSV"
        )

    content = await file.read()
    importer = CSVSaleImporter(db, pharmacy.id, pharmacy.timezone)
    import_id, result = importer.import_upload(content)
    logger.info(f"Sales import {import_id} from {file.filename}: {result.processed}/{result.total_rows} rows")

    return ImportResponse(
        import_id=str(import_id),
        success=result.success,
        processed=result.processed,
        total_rows=result.total_rows,
        errors=[issue.model_dump(exclude_none=True) for issue in result.errors],
    )


@router.get("/imports")
def list_imports(
    limit: int = Query(10, ge=1, le=100),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    return {"imports": CSVSaleImporter(db, pharmacy.id, pharmacy.timezone).recent_imports(limit=limit)}
