"""Package lifecycle routes."""

from __future__ import annotations

import asyncio
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse, JSONResponse, Response

from sectionforge.api.dependencies import get_builder
from sectionforge.api.schemas import (
    APIResponse,
    PackageCreateRequest,
    package_result_to_dict,
)
from sectionforge.packaging.builder import PackageBuilder, PackagingError
from sectionforge.packaging.schemas import PackageFilters

router = APIRouter(prefix="/api/packages", tags=["packages"])


def _not_found(package_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content=APIResponse(
            success=False,
            error=f"Package '{package_id}' not found",
        ).model_dump(),
    )


@router.post("")
async def create_package(
    body: PackageCreateRequest,
    builder: PackageBuilder = Depends(get_builder),
) -> Response:
    """Validate and package a module."""
    try:
        result = await asyncio.to_thread(
            builder.package_module,
            body.files.to_module_files(),
            body.options,
            body.metadata,
        )
    except PackagingError as exc:
        return JSONResponse(
            status_code=422,
            content=APIResponse(
                success=False,
                error=str(exc),
                metadata={
                    "errors": [e.model_dump(mode="json") for e in exc.errors]
                },
            ).model_dump(),
        )
    return JSONResponse(
        status_code=201,
        content=APIResponse(
            success=True, data=package_result_to_dict(result)
        ).model_dump(),
    )


@router.get("")
async def list_packages(
    created_after: datetime | None = Query(default=None),
    created_by: str | None = Query(default=None),
    module_type: str | None = Query(default=None),
    builder: PackageBuilder = Depends(get_builder),
) -> APIResponse:
    """List stored packages, newest first."""
    manifests = await asyncio.to_thread(
        builder.list_packages,
        PackageFilters(
            created_after=created_after,
            created_by=created_by,
            module_type=module_type,
        ),
    )
    return APIResponse(
        success=True,
        data=[m.model_dump(mode="json") for m in manifests],
        metadata={"count": len(manifests)},
    )


@router.get("/{package_id}")
async def get_package(
    package_id: str,
    builder: PackageBuilder = Depends(get_builder),
) -> Response:
    manifest = builder.get_package_info(package_id)
    if manifest is None:
        return _not_found(package_id)
    return JSONResponse(
        content=APIResponse(
            success=True,
            data=manifest.model_dump(mode="json"),
            metadata={
                "download_url": builder.download_url(package_id),
                "expires_at": builder.expires_at(manifest).isoformat(),
            },
        ).model_dump(),
    )


@router.get("/{package_id}/download")
async def download_package(
    package_id: str,
    builder: PackageBuilder = Depends(get_builder),
) -> Response:
    """Stream the archive; 404 when missing or expired."""
    path = builder.get_package_archive(package_id)
    if path is None:
        return _not_found(package_id)
    media_type = (
        "application/zip" if path.suffix == ".zip" else "application/x-tar"
    )
    if path.name.endswith(".tar.gz"):
        media_type = "application/gzip"
    return FileResponse(path, media_type=media_type, filename=path.name)


@router.delete("/{package_id}")
async def delete_package(
    package_id: str,
    builder: PackageBuilder = Depends(get_builder),
) -> APIResponse:
    deleted = await asyncio.to_thread(builder.delete_package, package_id)
    return APIResponse(success=deleted, data={"package_id": package_id})
