import io

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from claimcoach.database import get_db
from claimcoach.claims.dependencies import require_adjudication_open
from claimcoach.claims.models import Claim
from claimcoach.exceptions import ClaimCoachError
from claimcoach.legal_package.service import LegalPackageService
from claimcoach.shared.http import http_error
from claimcoach.storage.service import FileStore, get_file_store

router = APIRouter(prefix="/claims/{claim_id}", tags=["legal-package"])


@router.get("/legal-package")
async def download_legal_package(
    claim: Claim = Depends(require_adjudication_open),
    db: AsyncSession = Depends(get_db),
    store: FileStore = Depends(get_file_store),
):
    service = LegalPackageService(db, store=store)
    try:
        package = await service.generate(claim.id)
    except ClaimCoachError as e:
        raise http_error(e)

    return StreamingResponse(
        io.BytesIO(package.content),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{package.file_name}"'},
    )
