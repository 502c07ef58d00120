"""API endpoints for amil configuration snapshots."""
from fastapi import APIRouter, status

from revshare.api.deps import ConfigSnapshots
from revshare.core.exceptions import NotFound
from revshare.models.config_snapshot import ConfigSnapshotRecord
from revshare.schemas.config_snapshot import ConfigSnapshotResponse, ConfigSnapshotSave

router = APIRouter()


def _record_response(record: ConfigSnapshotRecord) -> ConfigSnapshotResponse:
    return ConfigSnapshotResponse.model_validate({
        **record.values,
        "version": record.version,
        "created_by": record.created_by,
        "created_at": record.created_at,
    })


@router.get("/active", response_model=ConfigSnapshotResponse)
async def get_active_config(service: ConfigSnapshots):
    """The snapshot new transactions are calculated with."""
    snapshot = await service.get_active()
    return _record_response(await service.get_record(snapshot.version))


@router.get("/versions/{version}", response_model=ConfigSnapshotResponse)
async def get_config_version(version: int, service: ConfigSnapshots):
    """A past snapshot, as stored on the records calculated with it."""
    record = await service.get_record(version)
    if record is None:
        raise NotFound(f"Config snapshot version {version} not found")
    return _record_response(record)


@router.post("", response_model=ConfigSnapshotResponse, status_code=status.HTTP_201_CREATED)
async def save_config(data: ConfigSnapshotSave, service: ConfigSnapshots):
    """
    Save new amil settings as the next snapshot version.

    422 CONFIG_INVARIANT_VIOLATION when the percentages would over-collect.
    """
    record = await service.save(data, saved_by=data.saved_by)
    return _record_response(record)
