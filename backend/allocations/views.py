import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import exception_handler

from allocation.errors import (
    AuthorizationError,
    ConflictError,
    DataIntegrityError,
    DownstreamError,
    NotFoundError,
    ValidationError,
)
from allocation.state_machine import AllocationStateMachine
from matching.matcher import Matcher
from matching.policy import matching_policy_from_env

from .repository import DjangoRegistry
from .serializers import (
    AllocationRequestSerializer,
    CompleteTransplantSerializer,
    CreateRequestSerializer,
    EnhancedMatchesSerializer,
    FindMatchesSerializer,
    PredictSuccessSerializer,
    RankedMatchSerializer,
    RespondSerializer,
    SuccessPredictionSerializer,
)

logger = logging.getLogger(__name__)

HOSPITAL_HEADER = "X-Hospital-Id"

_STATUS_BY_ERROR = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (DataIntegrityError, status.HTTP_409_CONFLICT),
    (DownstreamError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def allocation_exception_handler(exc, context):
    """
    Maps the allocation error taxonomy to HTTP; everything else goes through DRF's handler.
    Both come back as {"success": false, "error": ...}.
    """
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            if code >= 500:
                logger.error("%s: %s", type(exc).__name__, exc)
            return Response({"success": False, "error": str(exc)}, status=code)

    response = exception_handler(exc, context)
    if response is not None:
        response.data = {"success": False, "error": response.data}
    return response


def acting_hospital_id(request) -> str:
    hospital_id = (request.headers.get(HOSPITAL_HEADER) or "").strip()
    if not hospital_id:
        raise AuthorizationError(f"{HOSPITAL_HEADER} header is required")
    return hospital_id


def _matcher(registry: DjangoRegistry) -> Matcher:
    return Matcher(registry, policies=registry, policy=matching_policy_from_env())


def _match_payload(result, algorithm: str) -> dict:
    return {
        "success": True,
        "recipient_id": result.recipient_id,
        "matches": RankedMatchSerializer(result.matches, many=True).data,
        "total_matches": result.total_matches,
        "total_candidates": result.total_candidates,
        "algorithm": algorithm,
        "policy_applied": result.policy_applied,
        "weight_policy": result.weight_policy,
        "applied_policies": list(result.applied_policies),
    }


class MatchingViewSet(viewsets.ViewSet):
    """
    Ranked donor search for a recipient owned by the acting hospital.
    """

    @action(detail=False, methods=["post"], url_path="find-matches")
    def find_matches(self, request):
        hospital_id = acting_hospital_id(request)
        serializer = FindMatchesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = _matcher(DjangoRegistry()).find_matches(
            data["recipient_id"],
            organ=data.get("organ_type"),
            blood_type=data.get("blood_type"),
            urgency=data.get("urgency_level"),
            hospital_id=hospital_id,
        )
        return Response(_match_payload(result, "cross_hospital"))

    @action(detail=False, methods=["post"], url_path="enhanced-matches")
    def enhanced_matches(self, request):
        hospital_id = acting_hospital_id(request)
        serializer = EnhancedMatchesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = _matcher(DjangoRegistry()).find_enhanced_matches(
            serializer.validated_data["recipient_id"], hospital_id=hospital_id
        )
        return Response(_match_payload(result, "enhanced"))

    @action(detail=False, methods=["post"], url_path="predict-success")
    def predict_success(self, request):
        hospital_id = acting_hospital_id(request)
        serializer = PredictSuccessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        prediction = _matcher(DjangoRegistry()).predict_success(
            data["recipient_id"], data["donor_id"], hospital_id=hospital_id
        )
        return Response({"success": True, "prediction": SuccessPredictionSerializer(prediction).data})


class AllocationRequestViewSet(viewsets.ViewSet):
    """
    Handles request creation and the pending -> accepted / rejected -> completed lifecycle.
    """

    def _state_machine(self) -> AllocationStateMachine:
        registry = DjangoRegistry()
        return AllocationStateMachine(registry, notifications=registry)

    def _request_list(self, requests) -> Response:
        return Response(
            {
                "success": True,
                "requests": AllocationRequestSerializer(requests, many=True).data,
                "total": len(requests),
            }
        )

    def list(self, request):
        """
        Requests the acting hospital sent, newest first.
        """
        hospital_id = acting_hospital_id(request)
        return self._request_list(self._state_machine().list_outgoing(hospital_id))

    @action(detail=False, methods=["get"])
    def incoming(self, request):
        hospital_id = acting_hospital_id(request)
        return self._request_list(self._state_machine().list_incoming(hospital_id))

    @action(detail=False, methods=["get"])
    def received(self, request):
        hospital_id = acting_hospital_id(request)
        return self._request_list(self._state_machine().list_received(hospital_id))

    def create(self, request):
        hospital_id = acting_hospital_id(request)
        serializer = CreateRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = self._state_machine().create_request(
            origin_hospital_id=hospital_id,
            target_hospital_id=data["donor_hospital_id"],
            recipient_id=data["recipient_id"],
            donor_id=data["donor_id"],
            notes=data.get("notes", ""),
        )
        return Response(
            {
                "success": True,
                "request_id": result.request_id,
                "status": result.status.value,
                "internal_match": result.auto_accepted,
                "auto_accepted": result.auto_accepted,
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"])
    def respond(self, request, pk=None):
        hospital_id = acting_hospital_id(request)
        serializer = RespondSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        new_status = self._state_machine().respond(
            pk, hospital_id, data["status"], notes=data.get("response_notes")
        )
        return Response({"success": True, "request_id": pk, "status": new_status.value})

    @action(detail=False, methods=["post"], url_path="complete-transplant")
    def complete_transplant(self, request):
        hospital_id = acting_hospital_id(request)
        serializer = CompleteTransplantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        completed = self._state_machine().complete_transplant(
            data["recipient_id"],
            data["donor_id"],
            notes=data.get("notes"),
            hospital_id=hospital_id,
        )
        return Response(
            {
                "success": True,
                "message": "Transplant marked as completed",
                "request": AllocationRequestSerializer(completed).data if completed else None,
            }
        )

    @action(detail=False, methods=["post"], url_path="mark-received-viewed")
    def mark_received_viewed(self, request):
        hospital_id = acting_hospital_id(request)
        count = self._state_machine().mark_received_viewed(hospital_id)
        return Response({"success": True, "updated": count})
