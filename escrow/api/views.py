"""
GraphQL view with idempotency and logging support.
"""
import hashlib
import json
import logging
import re
from uuid import UUID, uuid4

from ariadne import graphql_sync
from django.conf import settings
from django.db import IntegrityError, transaction
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from graphql import FieldNode, GraphQLError, OperationDefinitionNode, OperationType, parse

from escrow.api.middleware import ErrorHandler
from escrow.api.schema import format_domain_error, schema
from escrow.infra.models import IdempotencyKey
from escrow.infra.pii_masker import mask_pii_in_dict

logger = logging.getLogger(__name__)

CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class EscrowGraphQLView:
    """GraphQL view with idempotency and structured logging."""

    def dispatch(self, request, *args, **kwargs):
        """Handle GraphQL request with idempotency."""
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        idempotency_key = request.headers.get("Idempotency-Key")
        user_id = request.headers.get("X-User-ID")

        # Log request (with PII masking)
        log_data = {
            "request_id": request_id,
            "user_id": user_id,
            "idempotency_key": idempotency_key[:8] + "..." if idempotency_key else None,
            "operation": "graphql",
        }
        logger.info("graphql_request", extra=mask_pii_in_dict(log_data))

        try:
            if idempotency_key and request.method == "POST":
                response = self._dispatch_idempotent(request, request_id, idempotency_key, user_id)
            else:
                response = self._process_graphql_request(request)
        except Exception as e:
            response = ErrorHandler.handle_error(e)
            logger.error(
                "graphql_error",
                extra=mask_pii_in_dict({"request_id": request_id, "user_id": user_id, "error": str(e)}),
            )

        logger.info(
            "graphql_response",
            extra=mask_pii_in_dict({"request_id": request_id, "user_id": user_id, "status": response.status_code}),
        )
        return response

    def _dispatch_idempotent(self, request, request_id: str, idempotency_key: str, user_id: str | None):
        data = self._load_body(request)
        if data is None:
            return self._process_graphql_request(request)

        query = data.get("query") or ""
        variables = data.get("variables") or {}
        operation = self._extract_operation(query)
        if operation is None:
            # Idempotency applies to mutations only
            return self._process_graphql_request(request)

        user_uuid = None
        if user_id:
            try:
                user_uuid = UUID(user_id)
            except (ValueError, TypeError):
                logger.warning("invalid_user_id", extra={"request_id": request_id, "user_id": user_id})

        request_hash = self._create_request_hash(query, variables)
        existing = IdempotencyKey.objects.filter(
            key=idempotency_key,
            user_id=user_uuid,
            operation=operation,
        ).first()

        if existing:
            if existing.request_hash == request_hash:
                logger.info(
                    "idempotent_request_cached",
                    extra={
                        "request_id": request_id,
                        "idempotency_key": idempotency_key,
                        "operation": operation,
                    },
                )
                return JsonResponse(existing.response_payload, safe=False)

            logger.warning(
                "idempotency_key_conflict",
                extra={"request_id": request_id, "idempotency_key": idempotency_key, "operation": operation},
            )
            return ErrorHandler.error_response(
                "DUPLICATE_REQUEST", "Idempotency key already used with different request",
            )

        response = self._process_graphql_request(request)

        # Only successful responses are replayed
        response_data = json.loads(response.content)
        if response.status_code == 200 and not response_data.get("errors"):
            try:
                with transaction.atomic():
                    IdempotencyKey.objects.create(
                        key=idempotency_key,
                        user_id=user_uuid,
                        operation=operation,
                        request_hash=request_hash,
                        response_payload=response_data,
                    )
            except IntegrityError:
                logger.warning(
                    "failed_to_save_idempotency",
                    extra={"request_id": request_id, "idempotency_key": idempotency_key, "operation": operation},
                )
        return response

    def _create_request_hash(self, query: str, variables: dict) -> str:
        """Create hash of request for deduplication."""
        content = json.dumps({"query": query, "variables": variables}, sort_keys=True, default=str)
        return hashlib.sha256(content.encode()).hexdigest()

    def _extract_operation(self, query: str) -> str | None:
        """Operation key from the mutation's root fields, e.g. ``CONFIRM_ORDER``."""
        try:
            document = parse(query)
        except GraphQLError:
            return None
        fields = []
        for definition in document.definitions:
            if isinstance(definition, OperationDefinitionNode) and definition.operation == OperationType.MUTATION:
                fields.extend(
                    CAMEL_BOUNDARY.sub("_", selection.name.value).upper()
                    for selection in definition.selection_set.selections
                    if isinstance(selection, FieldNode)
                )
        if not fields:
            return None
        return "+".join(sorted(fields))[:64]

    def _load_body(self, request) -> dict | None:
        try:
            data = json.loads(request.body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def _process_graphql_request(self, request):
        """Process GraphQL request."""
        if request.method == "GET":
            return JsonResponse({"message": "GraphQL endpoint. Use POST for queries."})

        data = self._load_body(request)
        if data is None:
            return ErrorHandler.error_response("VALIDATION_ERROR", "Invalid JSON")

        success, result = graphql_sync(
            schema,
            data,
            context_value={"request": request},
            error_formatter=format_domain_error,
            debug=settings.DEBUG,
        )
        status_code = 200 if success else 400
        return JsonResponse(result, status=status_code)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def graphql_view(request):
    """GraphQL endpoint."""
    view = EscrowGraphQLView()
    return view.dispatch(request)
