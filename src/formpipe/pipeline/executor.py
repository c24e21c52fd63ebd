"""Pipeline executor: hooks, validators, transport and result mapping.

Executes one submission through the pipeline phases:

    1. seed request context into run meta
    2. global before-hooks
    3. per validator: scoped before-hooks, snapshot, validate, scoped after-hooks
    4. global after-hooks
    5. resolve a sender
    6. build and send the message, then after-send or on-failure hooks

Hook errors are isolated by the dispatcher. Validation errors stop the run.
Every outcome maps to exactly one code in the returned PipelineResult.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from formpipe import validators as builtin_validators
from formpipe.codes import ERR_NO_SENDER, ERR_SEND_FAILED, ERR_UNEXPECTED, ERR_VALIDATION, OK_SENT
from formpipe.config import SendmailConfig, SmtpConfig, TrustPolicy
from formpipe.errors import TransportError, ValidationError
from formpipe.http.proxy import TrustedProxyResolver, build_request_context
from formpipe.mail.message import OutboundMessage
from formpipe.mail.sender import Sender
from formpipe.mail.sendmail import SendmailSender
from formpipe.mail.smtp import SmtpSender
from formpipe.mail.template import DefaultTemplate, MessageTemplate
from formpipe.messages import MessageResolver
from formpipe.pipeline.dispatcher import HookDispatcher
from formpipe.pipeline.envelope import PipelineResult, build_result
from formpipe.pipeline.hook import HookContext, ValidatorsMeta
from formpipe.pipeline.record import SubmissionRecord
from formpipe.pipeline.snapshot import ReadOnlySnapshot
from formpipe.pipeline.validators import ValidationOutcome, ValidatorFn, ValidatorRegistry

if TYPE_CHECKING:
    from formpipe.config import FormPipeConfig

logger = logging.getLogger(__name__)

# Request context keys copied into run meta
CLIENT_KEYS = ("ip", "ua", "country", "request_id")
SERVER_KEYS = ("referer",)
SERVER_ALIASES = {"referer": "HTTP_REFERER"}


def default_resolver() -> MessageResolver:
    """Resolver with core, SMTP and built-in validator messages."""
    resolver = MessageResolver()
    SmtpSender.register_default_messages(resolver)
    builtin_validators.register_default_messages(resolver)
    return resolver


class PipelineExecutor:
    """Runs submissions through hooks, validators and a sender.

    Configuration is set before ``process`` is called and is read-only while
    it runs. Per-run state lives in local variables, so one executor can
    process any number of records.

    Attributes:
        validators: Ordered validator registry
        dispatcher: Hook dispatcher
        proxy_resolver: Resolver used by ``with_request``
    """

    def __init__(
        self,
        validators: Mapping[str, Any] | Iterable[Any] | None = None,
        hooks: Iterable[Any] = (),
        *,
        sender: Sender | None = None,
        resolver: MessageResolver | None = None,
        template: MessageTemplate | None = None,
        smtp: SmtpConfig | None = None,
        sendmail: SendmailConfig | None = None,
        transport: str = "smtp",
        trust_policy: TrustPolicy | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            validators: Mapping of label -> validator, or a list of validators
                and (label, validator) tuples
            hooks: Hook entries accepted by HookDispatcher
            sender: Injected sender; built from ``smtp``/``sendmail`` when None
            resolver: Code -> message resolver
            template: Message template, DefaultTemplate when None
            smtp: SMTP settings (addressing and lazy sender)
            sendmail: Sendmail settings, used when ``transport == "sendmail"``
            transport: Which configured transport builds the lazy sender
            trust_policy: Trusted-proxy policy for ``with_request``
            logger: Logger for pipeline events

        Raises:
            ConfigurationError: If a validator or hook entry is invalid
        """
        self.validators = ValidatorRegistry(validators)
        self.dispatcher = HookDispatcher(hooks)
        self.proxy_resolver = TrustedProxyResolver(trust_policy)
        self._sender = sender
        self._resolver = resolver or default_resolver()
        self._template: MessageTemplate = template or DefaultTemplate()
        self._smtp = smtp
        self._sendmail = sendmail
        self._transport = transport
        self._logger = logger or logging.getLogger(__name__)
        self._context: dict[str, Any] = {}
        self._request_body: dict[str, Any] = {}

    @classmethod
    def from_config(cls, config: FormPipeConfig) -> PipelineExecutor:
        """Build an executor from loaded configuration.

        Raises:
            ConfigurationError: If a configured validator or hook cannot be loaded
        """
        resolver = default_resolver()
        if config.messages:
            resolver.extend(config.messages)

        executor = cls(
            resolver=resolver,
            smtp=config.smtp,
            sendmail=config.sendmail,
            transport=config.transport,
            trust_policy=config.trusted_proxy,
        )
        for label, validator in config.load_validators():
            executor.add_validator(validator, label)
        executor.set_hooks(config.load_hooks())

        logger.info(
            f"Pipeline configured: validators={executor.validators.labels} "
            f"hooks={len(executor.dispatcher.specs)} transport={config.transport}"
        )
        return executor

    # ------------------------------------------------------------------
    # Configuration surface
    # ------------------------------------------------------------------

    def with_context(self, context: Mapping[str, Any]) -> PipelineExecutor:
        """Merge request context; later values win on key conflicts."""
        self._context.update(context)
        return self

    def with_request(
        self,
        headers: Mapping[str, Any] | None,
        remote_addr: str | None,
        body: Mapping[str, Any] | None = None,
    ) -> PipelineExecutor:
        """Seed context from raw request data using the trusted-proxy policy."""
        self.with_context(build_request_context(self.proxy_resolver, headers, remote_addr))
        if body is not None:
            self.with_request_body(body)
        return self

    def with_request_body(self, body: Mapping[str, Any]) -> PipelineExecutor:
        """Register the raw parsed request body for hooks."""
        self._request_body = dict(body)
        return self

    def set_validators(self, validators: Mapping[str, Any] | Iterable[Any]) -> PipelineExecutor:
        self.validators.set_validators(validators)
        return self

    def add_validator(self, validator: Any, label: str | None = None) -> str:
        """Register a validator and return its label."""
        return self.validators.add(validator, label)

    def set_hooks(self, hooks: Iterable[Any]) -> PipelineExecutor:
        self.dispatcher.configure(hooks)
        return self

    def add_hook(self, entry: Any) -> PipelineExecutor:
        self.dispatcher.add(entry)
        return self

    def set_sender(self, sender: Sender | None) -> PipelineExecutor:
        self._sender = sender
        return self

    def set_smtp_config(self, smtp: SmtpConfig | None) -> PipelineExecutor:
        self._smtp = smtp
        return self

    def set_message_resolver(self, resolver: MessageResolver) -> PipelineExecutor:
        self._resolver = resolver
        return self

    def set_template(self, template: MessageTemplate) -> PipelineExecutor:
        self._template = template
        return self

    def set_logger(self, pipeline_logger: logging.Logger) -> PipelineExecutor:
        self._logger = pipeline_logger
        return self

    @property
    def resolver(self) -> MessageResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(self, record: SubmissionRecord) -> PipelineResult:
        """Process one submission.

        Args:
            record: Live record; hooks may mutate it

        Returns:
            PipelineResult. Never raises.
        """
        meta = self._seed_meta()
        validators_meta: ValidatorsMeta = {}
        meta["validators"] = validators_meta
        ctx = HookContext(record, {**self._context, "body": self._request_body})

        try:
            self.dispatcher.before_validate_global(ctx)

            for label, validator in self.validators:
                self._run_validator(label, validator, record, ctx, validators_meta)

            self.dispatcher.after_validate_global(ctx, validators_meta)

            sender = self._resolve_sender()
            if sender is None:
                self._logger.error("No sender configured; message not sent")
                return self._result(ERR_NO_SENDER, record, meta)

            return self._deliver(sender, record, ctx, meta)

        except ValidationError as e:
            self._logger.warning(f"Validation failed: code={e.error_code} field={e.field} meta={e.meta}")
            return self._result(e.error_code or ERR_VALIDATION, record, meta, e.meta)

        except Exception as e:
            self._logger.exception(f"Unexpected pipeline error: {type(e).__name__}: {e}")
            return self._result(ERR_UNEXPECTED, record, meta)

    def _run_validator(
        self,
        label: str,
        validator: ValidatorFn,
        record: SubmissionRecord,
        ctx: HookContext,
        validators_meta: ValidatorsMeta,
    ) -> None:
        """Run one validator between its scoped hooks.

        Raises:
            ValidationError: After recording the failure and running the
                label's after-hooks
        """
        self.dispatcher.before_validate(label, ctx)

        snapshot = ReadOnlySnapshot.from_record(record)
        outcomes = validators_meta.setdefault(label, [])
        try:
            returned = validator(snapshot)
        except ValidationError as e:
            outcomes.append(ValidationOutcome.failed(e).to_meta())
            self.dispatcher.after_validate(label, ctx, {label: outcomes})
            raise

        outcomes.append(ValidationOutcome.passed(returned).to_meta())
        self.dispatcher.after_validate(label, ctx, {label: outcomes})

    def _deliver(
        self,
        sender: Sender,
        record: SubmissionRecord,
        ctx: HookContext,
        meta: dict[str, Any],
    ) -> PipelineResult:
        try:
            message = self._build_message(record)
            message_id = sender.send(message)
        except Exception as e:
            self._logger.error(f"Send failed: {type(e).__name__}: {e}")
            self.dispatcher.send_failure(ctx, e)
            if isinstance(e, TransportError):
                return self._result(e.error_code or ERR_SEND_FAILED, record, meta, e.context)
            return self._result(ERR_SEND_FAILED, record, meta)

        self._logger.info(f"Message sent to {message.to}")
        self.dispatcher.after_send(ctx, message_id or "")
        return self._result(OK_SENT, record, meta)

    def _build_message(self, record: SubmissionRecord) -> OutboundMessage:
        addressing = self._addressing()
        return OutboundMessage.from_record(
            record,
            to=addressing.to if addressing else "",
            from_address=addressing.from_address if addressing else "",
            from_name=addressing.from_name if addressing else "",
            template=self._template,
            meta=record.meta if isinstance(record.meta, Mapping) else {},
        )

    def _addressing(self) -> SmtpConfig | SendmailConfig | None:
        if self._transport == "sendmail" and self._sendmail is not None:
            return self._sendmail
        return self._smtp or self._sendmail

    def _resolve_sender(self) -> Sender | None:
        if self._sender is not None:
            return self._sender
        if self._transport == "sendmail" and self._sendmail is not None:
            return SendmailSender(self._sendmail)
        if self._smtp is not None and self._smtp.host:
            return SmtpSender(self._smtp)
        return None

    def _seed_meta(self) -> dict[str, Any]:
        meta: dict[str, Any] = {}
        client = self._context.get("client")
        if isinstance(client, Mapping):
            picked = {key: client[key] for key in CLIENT_KEYS if client.get(key)}
            if picked:
                meta["client"] = picked
        server = self._context.get("server")
        if isinstance(server, Mapping):
            picked = {}
            for key in SERVER_KEYS:
                value = server.get(key) or server.get(SERVER_ALIASES.get(key, ""))
                if value:
                    picked[key] = value
            if picked:
                meta["server"] = picked
        return meta

    def _result(
        self,
        code: str,
        record: SubmissionRecord,
        meta: dict[str, Any],
        context: Mapping[str, Any] | None = None,
    ) -> PipelineResult:
        record_meta = record.meta if isinstance(record.meta, Mapping) else {}
        return build_result(
            code,
            self._resolver.resolve(code, context),
            {**record_meta, **meta},
        )
