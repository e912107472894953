"""
Protocol Dispatcher

The QBWC state machine. One decoded call in, one SOAP reply out.

Per-session states:
- Unauthenticated: no stored session for the ticket
- Idle: session exists, nothing dispatched
- AwaitingResponse: one unit of work handed out, result pending
- Terminated: closeConnection or TTL eviction (again, no stored session)

Supported methods:
- serverVersion -> fixed version string
- clientVersion -> "" or "E:<message>"
- authenticate -> [ticket, ""] or ["", "nvu"]
- sendRequestXML -> qbXML request, or "" for no work
- receiveResponseXML -> "1" more work, "0" done, "-1" abort
- connectionError -> "done"
- getLastError -> ""
- closeConnection -> "OK"

Handlers raise QbwcError subclasses (or let collaborator exceptions escape).
The dispatcher owns the one mapping from error kind to each method's
sentinel, so a failure never becomes a transport error.
"""

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from qbwc.protocol.envelope import (
    ABORT,
    ALL_DONE,
    CLIENT_VERSION_ERROR_PREFIX,
    CLOSED,
    DONE,
    MORE_WORK,
    NO_WORK,
    NOT_VALID_USER,
    REQUEST_MODELS,
    AuthenticateRequest,
    ClientVersionRequest,
    CloseConnectionRequest,
    ConnectionErrorRequest,
    GetLastErrorRequest,
    InboundCall,
    MethodName,
    QbwcRequest,
    ReceiveResponseXmlRequest,
    SendRequestXmlRequest,
    ServerVersionRequest,
    decode_envelope,
)
from qbwc.protocol.interpreter import (
    classify,
    extract_reference,
    parse_directory,
    response_status,
)
from qbwc.protocol.replies import Reply, encode_reply
from qbwc.qbxml.builders import DirectoryQueryBuilder, PayloadBuilder, TransactionRecorder
from qbwc.queue.ports import WorkItem, WorkQueue
from qbwc.session import DispatchedWork, Session, SessionRegistry, WorkKind
from qbwc.storage.ports import ConnectionStatus, ConnectionStore, SyncLogStore
from qbwc.dispatch.credentials import CredentialValidator
from qbwc.dispatch.errors import (
    AuthenticationFailure,
    ErrorKind,
    MalformedRequest,
    ProtocolViolation,
    QbwcError,
    UnknownSession,
    UpstreamCollaboratorError,
)
from qbwc.dispatch.journal import (
    log_connect,
    log_connection_error,
    log_directory_import,
    log_disconnect,
    log_sync,
)

logger = logging.getLogger(__name__)

DEFAULT_SERVER_VERSION = "QBWC Sync Server v1.0"
DEFAULT_MIN_CLIENT_VERSION = 2.0

_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+))")

Handler = Callable[[Any], Awaitable[Reply]]
Encoder = Callable[[str, Reply | None], str]


@dataclass(frozen=True)
class MethodRoute:
    """
    How one QBWC method is served.

    Attributes:
        request_model: Typed request the raw fields decode into
        handler: Coroutine producing the result
        fallback: Reply when the handler fails in a way with no specific sentinel
        encoder: Result -> SOAP document
    """
    request_model: type[QbwcRequest]
    handler: Handler
    fallback: Reply
    encoder: Encoder = encode_reply


# Error kind -> reply, where it differs from the route's fallback
_ERROR_REPLIES: dict[tuple[MethodName, ErrorKind], Reply] = {
    (MethodName.AUTHENTICATE, ErrorKind.AUTHENTICATION_FAILURE): ["", NOT_VALID_USER],
    (MethodName.SEND_REQUEST_XML, ErrorKind.UNKNOWN_SESSION): NO_WORK,
    (MethodName.SEND_REQUEST_XML, ErrorKind.PROTOCOL_VIOLATION): NO_WORK,
    (MethodName.RECEIVE_RESPONSE_XML, ErrorKind.UNKNOWN_SESSION): ABORT,
}


def parse_client_version(version: str | None) -> float | None:
    """
    Read the leading number of a Web Connector version string.

    "2.1.0.30" -> 2.1; "" or "abc" -> None.
    """
    if not version:
        return None
    match = _LEADING_NUMBER.match(version)
    if match is None:
        return None
    return float(match.group(1))


def _qbxml_version(major: str | None, minor: str | None) -> str | None:
    if not major:
        return None
    return f"{major}.{minor or '0'}"


class ProtocolDispatcher:
    """
    Serves QBWC calls against a SessionRegistry and the sync collaborators.

    One instance serves every agent; per-ticket serialization comes from
    SessionRegistry.hold().
    """

    def __init__(
        self,
        registry: SessionRegistry,
        credentials: CredentialValidator,
        connections: ConnectionStore,
        work: WorkQueue,
        sync_log: SyncLogStore,
        payloads: PayloadBuilder,
        directory: DirectoryQueryBuilder,
        recorder: TransactionRecorder,
        server_version: str = DEFAULT_SERVER_VERSION,
        min_client_version: float = DEFAULT_MIN_CLIENT_VERSION,
    ):
        """
        Initialize the dispatcher.

        Args:
            registry: Session registry
            credentials: Authenticates the agent
            connections: Connection configuration/status
            work: Sync queue
            sync_log: Operator-visible log
            payloads: Builds qbXML for queue items
            directory: Builds the one-shot employee query
            recorder: Stores identifiers QuickBooks returns
            server_version: serverVersion reply
            min_client_version: Oldest Web Connector accepted
        """
        self._registry = registry
        self._credentials = credentials
        self._connections = connections
        self._work = work
        self._sync_log = sync_log
        self._payloads = payloads
        self._directory = directory
        self._recorder = recorder
        self._server_version = server_version
        self._min_client_version = min_client_version

        handlers: dict[MethodName, tuple[Handler, Reply]] = {
            MethodName.SERVER_VERSION: (self._server_version_reply, NO_WORK),
            MethodName.CLIENT_VERSION: (self._client_version, NO_WORK),
            MethodName.AUTHENTICATE: (self._authenticate, ["", NOT_VALID_USER]),
            MethodName.SEND_REQUEST_XML: (self._send_request_xml, NO_WORK),
            MethodName.RECEIVE_RESPONSE_XML: (self._receive_response_xml, ABORT),
            MethodName.CONNECTION_ERROR: (self._connection_error, DONE),
            MethodName.GET_LAST_ERROR: (self._get_last_error, NO_WORK),
            MethodName.CLOSE_CONNECTION: (self._close_connection, CLOSED),
        }
        self._routes: dict[MethodName, MethodRoute] = {
            method: MethodRoute(REQUEST_MODELS[method], handler, fallback)
            for method, (handler, fallback) in handlers.items()
        }

    # =========================================================================
    # Entry points
    # =========================================================================

    async def handle(self, body: bytes | str) -> str:
        """
        Serve one raw SOAP request.

        Raises:
            EnvelopeError: If the body cannot be decoded at all
        """
        call = decode_envelope(body)
        return await self.dispatch(call)

    async def dispatch(self, call: InboundCall) -> str:
        """Serve one decoded call. Never raises for protocol-level failures."""
        method = call.known_method
        route = self._routes.get(method) if method else None
        if route is None:
            logger.warning(f"Unknown QBWC method: {call.method}")
            return encode_reply(call.method, NO_WORK)

        ticket = call.fields.get("ticket")
        logger.info(f"QBWC {method.value}" + (f" ticket={ticket}" if ticket else ""))

        try:
            request = self._decode(route, call)
            result = await route.handler(request)
        except QbwcError as e:
            result = self._reply_for_error(method, route, e)
        except Exception as e:
            logger.exception(f"{method.value} failed: {e}")
            result = self._sentinel_for(method, route, UpstreamCollaboratorError.kind)

        return route.encoder(method.value, result)

    @staticmethod
    def _decode(route: MethodRoute, call: InboundCall) -> QbwcRequest:
        try:
            return route.request_model.model_validate(call.fields)
        except ValidationError as e:
            raise MalformedRequest(str(e)) from e

    @staticmethod
    def _sentinel_for(method: MethodName, route: MethodRoute, kind: ErrorKind) -> Reply:
        """The single error kind -> sentinel mapping."""
        return _ERROR_REPLIES.get((method, kind), route.fallback)

    def _reply_for_error(self, method: MethodName, route: MethodRoute, error: QbwcError) -> Reply:
        if error.kind == ErrorKind.PROTOCOL_VIOLATION:
            logger.warning(f"{method.value}: protocol violation: {error.message}")
        elif error.kind in (ErrorKind.UNKNOWN_SESSION, ErrorKind.AUTHENTICATION_FAILURE):
            logger.info(f"{method.value}: {error.message}")
        else:
            logger.error(f"{method.value}: {error.kind.value}: {error.message}")
        return self._sentinel_for(method, route, error.kind)

    # =========================================================================
    # Handshake
    # =========================================================================

    async def _server_version_reply(self, request: ServerVersionRequest) -> Reply:
        return self._server_version

    async def _client_version(self, request: ClientVersionRequest) -> Reply:
        version = parse_client_version(request.version)
        if version is None:
            return NO_WORK
        if version < self._min_client_version:
            logger.warning(f"Rejecting Web Connector version {request.version}")
            return (
                f"{CLIENT_VERSION_ERROR_PREFIX}This application requires Web Connector "
                f"version {self._min_client_version} or higher"
            )
        return NO_WORK

    async def _authenticate(self, request: AuthenticateRequest) -> Reply:
        if not await self._credentials.validate(request.username, request.password):
            raise AuthenticationFailure(f"Rejected credentials for user {request.username!r}")

        session = await self._registry.create(request.username)
        try:
            await self._connections.update_status(ConnectionStatus.CONNECTED.value)
            await self._sync_log.append(log_connect(session.ticket, session.username))
        except Exception:
            # The ticket is never returned, so the session must not outlive this call
            await self._registry.remove(session.ticket)
            raise
        return [session.ticket, NO_WORK]

    # =========================================================================
    # Work exchange
    # =========================================================================

    async def _send_request_xml(self, request: SendRequestXmlRequest) -> Reply:
        async with self._registry.hold(request.ticket) as session:
            if session is None:
                raise UnknownSession(request.ticket)

            if session.record_company_file(request.company_file_name):
                await self._connections.update_status(
                    ConnectionStatus.CONNECTED.value,
                    version=_qbxml_version(request.major_version, request.minor_version),
                )

            if session.dispatched is not None:
                raise ProtocolViolation(
                    f"Session {session.ticket} asked for work while awaiting a response "
                    f"for {session.dispatched.label}"
                )

            # A lost claim means another session took the item; try the next one
            while True:
                items = await self._work.peek_next(limit=1)
                if not items:
                    return await self._dispatch_directory_query(session)
                item = await self._work.mark_processing(items[0].id)
                if item is not None:
                    return await self._dispatch_item(session, item)
                logger.debug(f"Session {session.ticket}: item {items[0].id} claimed elsewhere")

    async def _dispatch_directory_query(self, session: Session) -> Reply:
        """One-shot employee pull on the first slot of a session with an empty queue."""
        if session.request_count != 0:
            return NO_WORK

        connection = await self._connections.get()
        if connection is None or not connection.sync_employees:
            return NO_WORK

        payload = await self._directory.generate()
        session.dispatch(DispatchedWork.directory_query())
        logger.info(f"Session {session.ticket}: dispatched directory query")
        return payload

    async def _dispatch_item(self, session: Session, item: WorkItem) -> Reply:
        """Build and hand out an item already claimed for this session."""
        try:
            payload = await self._payloads.generate(
                item.type,
                item.reference_id,
                reference_type=item.reference_type,
            )
            reason = f"No request could be built for {item.type} {item.reference_type}:{item.reference_id}"
        except Exception as e:
            logger.exception(f"Payload generation failed for item {item.id}: {e}")
            payload = None
            reason = f"Payload generation failed: {e}"

        if not payload:
            logger.warning(f"Session {session.ticket}: item {item.id} failed: {reason}")
            await self._work.mark_failed(item.id, reason)
            return NO_WORK

        session.dispatch(DispatchedWork.queue_item(
            item.id,
            item_type=item.type,
            reference_id=item.reference_id,
            reference_type=item.reference_type,
        ))
        logger.info(
            f"Session {session.ticket}: dispatched item {item.id} "
            f"({item.type}/{item.action}, request #{session.request_count})"
        )
        return payload

    async def _receive_response_xml(self, request: ReceiveResponseXmlRequest) -> Reply:
        async with self._registry.hold(request.ticket) as session:
            if session is None:
                raise UnknownSession(request.ticket)

            # Cleared before any collaborator runs; hold() persists it either way
            work = session.complete()
            if work is None:
                logger.warning(f"Session {session.ticket}: response received with nothing dispatched")

            outcome = classify(request.response, request.hresult, request.message)
            status = response_status(request.response)
            if status is not None and status.is_error:
                logger.warning(
                    f"Session {session.ticket}: {status.request} returned "
                    f"{status.code}: {status.message}"
                )

            await self._sync_log.append(log_sync(
                session.ticket,
                outcome,
                record_type=work.reference_type if work else None,
                record_id=work.reference_id if work else None,
                status_message=status.message if status and status.is_error else None,
            ))

            if work is not None and work.kind == WorkKind.DIRECTORY_QUERY:
                if outcome.success:
                    entries = parse_directory(request.response)
                    await self._sync_log.append(log_directory_import(session.ticket, len(entries)))
            elif work is not None and work.kind == WorkKind.QUEUE_ITEM:
                await self._settle_item(work, outcome.success, request)

            pending = await self._work.peek_next(limit=1)
            return MORE_WORK if pending else ALL_DONE

    async def _settle_item(
        self,
        work: DispatchedWork,
        success: bool,
        request: ReceiveResponseXmlRequest,
    ) -> None:
        if not success:
            await self._work.mark_failed(work.item_id, request.message or None)
            return

        await self._work.mark_completed(work.item_id, request.response)

        reference = extract_reference(work.item_type, request.response)
        if not reference:
            return
        try:
            await self._recorder.record(
                work.item_type,
                work.reference_type,
                work.reference_id,
                reference,
            )
        except Exception as e:
            logger.warning(f"Could not record {reference} for {work.label}: {e}")

    # =========================================================================
    # Error reporting and shutdown
    # =========================================================================

    async def _connection_error(self, request: ConnectionErrorRequest) -> Reply:
        hresult = request.hresult or ""
        message = request.message or ""
        logger.warning(f"Web Connector reported connection error {hresult}: {message}")

        await self._connections.update_status(
            ConnectionStatus.ERROR.value,
            detail=f"{hresult}: {message}",
        )
        await self._sync_log.append(log_connection_error(request.ticket or "", hresult, message))
        return DONE

    async def _get_last_error(self, request: GetLastErrorRequest) -> Reply:
        return NO_WORK

    async def _close_connection(self, request: CloseConnectionRequest) -> Reply:
        async with self._registry.hold(request.ticket) as session:
            if session is None:
                return CLOSED

            try:
                await self._sync_log.append(log_disconnect(session.ticket, session.request_count))
                await self._connections.update_status(ConnectionStatus.DISCONNECTED.value)
            finally:
                await self._registry.remove(session.ticket)

        return CLOSED
