# Overview: Flask API routes for job cards; material consumption on create, reversal on delete.

from flask import Blueprint, request, jsonify, current_app

from ..services import job_card_service
from ..services.job_card_service import (
    JobCardNotFoundError,
    JobCardReversalError,
    JobCardValidationError,
)


job_cards_bp = Blueprint("job_cards", __name__, url_prefix="/api/job-cards")


@job_cards_bp.post("")
def create_job_card_route():
    """
    Create a job card and deduct its order's material consumption.

    Request body:
    {"order_id": 1, "job_number": "JC-0001"}

    Returns:
        {job_card, consumption: BatchResult}
    """
    data = request.get_json(silent=True) or {}

    order_id = data.get("order_id")
    job_number = data.get("job_number")
    if not order_id:
        return jsonify({"error": "order_id is required"}), 400
    if not job_number:
        return jsonify({"error": "job_number is required"}), 400

    try:
        job_card, result = job_card_service.create_job_card(order_id=order_id, job_number=job_number)
        return jsonify({
            "job_card": job_card.to_dict(),
            "consumption": result.to_dict(),
        }), 201
    except JobCardValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create job card")
        return jsonify({"error": "Internal server error"}), 500


@job_cards_bp.get("/<int:job_card_id>/deletion-check")
def deletion_check_route(job_card_id: int):
    """Warnings to show before a job card is deleted."""
    try:
        return jsonify(job_card_service.validate_job_card_deletion(job_card_id))
    except JobCardNotFoundError:
        return jsonify({"error": "Job card not found"}), 404


@job_cards_bp.delete("/<int:job_card_id>")
def delete_job_card_route(job_card_id: int):
    """
    Restore consumed materials, then delete the job card.

    Answers 409 with the reversal summary when nothing could be restored;
    the card is kept in that case.
    """
    try:
        result = job_card_service.delete_job_card(job_card_id)
        return jsonify(result.to_dict()), 200
    except JobCardNotFoundError:
        return jsonify({"error": "Job card not found"}), 404
    except JobCardReversalError as e:
        return jsonify(e.result.to_dict()), 409
    except Exception:
        current_app.logger.exception("Failed to delete job card")
        return jsonify({"error": "Internal server error"}), 500
