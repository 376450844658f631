"""
Report type API routes (read-only configuration).
"""
from fastapi import APIRouter
import logging

from backend.shared.report_types import (
    get_enabled_report_types,
    get_report_type_config,
    get_report_types_for_dropdown,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/report-types", tags=["report-types"])


@router.get("")
async def list_report_types():
    """Enabled report types in their condensed selection-list form."""
    report_types = get_report_types_for_dropdown()
    return {"success": True, "data": report_types, "total": len(report_types)}


@router.get("/full")
async def list_report_types_full():
    report_types = [config.to_wire() for config in get_enabled_report_types()]
    return {"success": True, "data": report_types, "total": len(report_types)}


@router.get("/{report_type_id}")
async def get_report_type(report_type_id: str):
    return {"success": True, "data": get_report_type_config(report_type_id).to_wire()}


@router.get("/{report_type_id}/template")
async def get_report_type_template(report_type_id: str):
    config = get_report_type_config(report_type_id)
    return {"success": True, "data": {"id": config.id, "template": config.template.to_wire()}}
