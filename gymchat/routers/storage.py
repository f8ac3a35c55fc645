from fastapi import APIRouter, Depends, HTTPException, Response

from gymchat.database.connection import mongo_db_dependency
from gymchat.utils.object_storage import BUCKETS, ObjectStorage


router = APIRouter(prefix="/storage", tags=["storage"])


def get_storage(db=Depends(mongo_db_dependency)) -> ObjectStorage:
    return ObjectStorage(db)


@router.get("/{bucket}/{path:path}")
async def download(bucket: str, path: str, storage: ObjectStorage = Depends(get_storage)):
    if bucket not in BUCKETS:
        raise HTTPException(status_code=404, detail="Unknown bucket")
    found = await storage.open(bucket, path)
    if found is None:
        raise HTTPException(status_code=404, detail="Object not found")
    data, content_type = found
    return Response(content=data, media_type=content_type)
