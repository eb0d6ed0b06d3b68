from typing import List

from fastapi import APIRouter, Depends

from ..deps import get_context_index, get_guides
from ..schemas import Guide, IndexEntry

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health(guides: List[Guide] = Depends(get_guides), index: List[IndexEntry] = Depends(get_context_index)):
	return {"status": "ok", "guides": len(guides), "contextChunks": len(index)}
