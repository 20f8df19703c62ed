from fastapi import APIRouter

from ..services.document_types import DOCUMENT_TYPE_INFO, get_document_types_by_category

router = APIRouter()


@router.get("/document-types")
def list_document_types():
    grouped = get_document_types_by_category()
    return {
        "categories": {
            category: [info.as_dict() for info in infos] for category, infos in grouped.items()
        },
        "total": len(DOCUMENT_TYPE_INFO),
    }
