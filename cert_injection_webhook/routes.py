import logging

from flask import Blueprint, jsonify, request

from .admission import AdmissionController
from .helpers import make_admission_response, make_admission_review
from .models import AdmissionReviewModel

log = logging.getLogger("cert-injection-webhook")


def create_routes(controller: AdmissionController):
    bp = Blueprint("webhook", __name__)

    @bp.route("/health", methods=["GET"])
    def health():
        return {"status": "healthy"}, 200

    @bp.route(controller.path, methods=["POST"])
    def mutate():
        uid = ""
        try:
            review_json = request.get_json(silent=True)

            admission = AdmissionReviewModel.from_dict(review_json or {})
            if admission is None:
                log.warning("Invalid AdmissionReview payload for %s", controller.path)
                return jsonify(make_admission_review(uid, make_admission_response(False))), 400

            uid = admission.request.uid
            response = controller.admit(admission.request)
            return jsonify(make_admission_review(uid, response, admission.api_version))
        except Exception:
            log.error("Error in %s", controller.path, exc_info=True)
            return jsonify(make_admission_review(uid, make_admission_response(False))), 500

    return bp
