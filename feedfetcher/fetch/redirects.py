"""Redirect deciders for the synchronous request executor.

The default decider applies the redirect policy from ``ClientParams``
on top of httpx's own redirect request builder. The tracking decider
wraps any decider and records every hop it approves without changing
the decision.
"""

from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import urlsplit

import httpx

from feedfetcher.fetch.config import ClientParams
from feedfetcher.fetch.errors import RelativeRedirectError
from feedfetcher.fetch.models import RedirectHop


@dataclass
class RedirectContext:
    """Redirect state for a single request execution."""

    params: ClientParams
    hops: int = 0
    visited: set[str] = field(default_factory=set)


class RedirectDecider(Protocol):
    """Decides whether and where a response should be redirected."""

    def decide(
        self,
        request: httpx.Request,
        response: httpx.Response,
        context: RedirectContext,
    ) -> httpx.Request | None:
        """Return the next request to send, or None to stop."""
        ...


class DefaultRedirectDecider:
    """Default redirect policy.

    Follows any response carrying a redirect Location, using the next
    request httpx builds for it (method rewriting, cross-origin header
    stripping, relative Location resolution). Enforces the hop limit,
    the circular redirect rule and the relative redirect rule.
    """

    def decide(
        self,
        request: httpx.Request,
        response: httpx.Response,
        context: RedirectContext,
    ) -> httpx.Request | None:
        """Decide on the next hop.

        Args:
            request: Request that produced the response.
            response: Response being inspected.
            context: Request-scoped redirect state.

        Returns:
            Next request, or None if the response is final.

        Raises:
            httpx.TooManyRedirects: Hop limit exceeded or forbidden circular redirect.
            RelativeRedirectError: Relative Location with relative redirects rejected.
        """
        params = context.params
        if not params.follow_redirects or not response.has_redirect_location:
            return None

        next_request = response.next_request
        if next_request is None:
            return None

        location = response.headers["location"]
        if params.reject_relative_redirects and not urlsplit(location).scheme:
            raise RelativeRedirectError(location, response.status_code)

        if context.hops >= params.max_redirects:
            msg = f"Exceeded maximum allowed redirects ({params.max_redirects})"
            raise httpx.TooManyRedirects(msg, request=request)

        target = str(next_request.url)
        if not params.allow_circular_redirects and target in context.visited:
            msg = f"Circular redirect to {target}"
            raise httpx.TooManyRedirects(msg, request=request)

        context.hops += 1
        context.visited.add(target)
        return next_request


class TrackingRedirectDecider:
    """Records every approved redirect hop into a caller-owned list.

    The decision itself is left entirely to the delegate. One instance
    and one sink belong to exactly one request execution.
    """

    def __init__(
        self,
        sink: list[RedirectHop],
        delegate: RedirectDecider | None = None,
    ) -> None:
        self._sink = sink
        self._delegate = delegate or DefaultRedirectDecider()

    def decide(
        self,
        request: httpx.Request,
        response: httpx.Response,
        context: RedirectContext,
    ) -> httpx.Request | None:
        """Delegate the decision and record the hop if one is taken."""
        next_request = self._delegate.decide(request, response, context)
        if next_request is not None:
            self._sink.append(RedirectHop(response.status_code, str(next_request.url)))
        return next_request


def create_tracking_decider(
    sink: list[RedirectHop],
    delegate: RedirectDecider | None = None,
) -> TrackingRedirectDecider:
    """Create a tracking decider over a fresh or supplied delegate."""
    return TrackingRedirectDecider(sink, delegate)
