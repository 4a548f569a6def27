# Overview: Request decorators for API routes: authentication, access gating, response caching, rate limiting.

from functools import wraps
from flask import request, jsonify, g, current_app, make_response

from .services import session_service
from .services.access_service import (
    AccessDecision,
    AccessPolicy,
    Identity,
    decide_access,
    describe,
    http_status,
)
from .services.audit_service import log_security_event
from .services.rate_limit_service import RATE_LIMIT_RULES
from .services.response_cache import CACHE_PRESETS


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def client_ip() -> str:
    """
    Address used for rate limiting and audit rows.

    SECURITY: X-Forwarded-For is client-controlled, so its first hop is only
    read when TRUST_PROXY_HEADERS is on (the app sits behind a proxy that
    overwrites the header). Otherwise the socket peer is used.
    """
    if current_app.config.get("TRUST_PROXY_HEADERS", False):
        first = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        if first:
            return first
    return request.remote_addr or "unknown"


def invalidate_cached(preset_name: str) -> int:
    """Drop every cached response a write under preset_name could have changed."""
    cache = current_app.extensions["response_cache"]
    return sum(cache.invalidate(pattern) for pattern in CACHE_PRESETS[preset_name].invalidate_on)


def require_auth(f):
    """
    Require a valid session token.

    Sets:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if there is no Bearer token or the token is
    invalid, expired, idle too long or revoked. Account status is NOT
    checked here; stack @require_access for that.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_access(*roles):
    """
    Gate a route through the access state machine.

    With no roles any APPROVED, active user with a recognized role passes;
    otherwise the user's role must be one of roles. Denials answer 401
    (inactive) or 403 with the decision, redirect target and message, and
    are audited.
    """
    policy = AccessPolicy.for_roles(*roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            decision = decide_access(Identity.from_user(user), policy)
            g.access_decision = decision

            if decision is not AccessDecision.ALLOW:
                current_app.logger.warning(
                    "Access denied for user %s on %s %s: %s",
                    user.id, request.method, request.path, decision.value,
                )
                log_security_event(
                    event_type="ACCESS_DENIED",
                    success=False,
                    user_id=user.id,
                    identifier=user.email,
                    resource=request.path,
                    action=request.method,
                    reason=decision.value,
                    ip_address=client_ip(),
                    user_agent=request.headers.get("User-Agent"),
                )
                body = describe(decision)
                body["error"] = body["message"]
                return jsonify(body), http_status(decision)

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def cached_response(preset_name: str, per_user: bool = False):
    """
    Serve GET responses from the app's ResponseCache; invalidate on writes.

    GET: 2xx JSON bodies are cached for the preset TTL, keyed by path,
    query string and (when per_user) the caller. X-Cache says HIT or MISS.
    Other methods: the handler runs first; a 2xx result drops every entry
    matching the preset's invalidation patterns.
    """
    preset = CACHE_PRESETS[preset_name]

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if request.method != "GET":
                response = make_response(f(*args, **kwargs))
                if 200 <= response.status_code < 300:
                    invalidate_cached(preset_name)
                return response

            cache = current_app.extensions["response_cache"]

            params = request.args.to_dict(flat=False)
            user_id = g.current_user.id if per_user and _is_authenticated() else None

            cached = cache.get(request.path, params, user_id)
            if cached is not None:
                response = make_response(jsonify(cached))
                response.headers["X-Cache"] = "HIT"
                return response

            response = make_response(f(*args, **kwargs))
            if 200 <= response.status_code < 300 and response.is_json:
                cache.set(request.path, response.get_json(), params, user_id, ttl_seconds=preset.ttl_seconds)
            response.headers["X-Cache"] = "MISS"
            return response

        return decorated_function
    return decorator


def rate_limited(rule_name: str):
    """
    Apply a fixed-window rate limit per client IP and path.

    Returns 429 with Retry-After when the window is exhausted. X-RateLimit-*
    headers are set on every response. No-op when RATE_LIMIT_ENABLED is off.
    """
    rule = RATE_LIMIT_RULES[rule_name]

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_app.config.get("RATE_LIMIT_ENABLED", True):
                return f(*args, **kwargs)

            limiter = current_app.extensions["rate_limiter"]
            result = limiter.hit(f"{rule_name}:{client_ip()}:{request.path}", rule)

            if not result.allowed:
                current_app.logger.warning(
                    "Rate limit %s exceeded by %s on %s", rule_name, client_ip(), request.path
                )
                response = jsonify({
                    "error": rule.message,
                    "code": "RATE_LIMIT_EXCEEDED",
                    "retry_after": result.retry_after,
                })
                response.status_code = 429
            else:
                response = make_response(f(*args, **kwargs))

            response.headers.update(result.headers())
            return response

        return decorated_function
    return decorator
