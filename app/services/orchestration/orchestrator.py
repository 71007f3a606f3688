"""Call orchestration driven by Telnyx webhooks.

Telnyx reports every leg separately and shares no session id between the
legs of one conversation. Each handler below works out which conversation a
leg belongs to, in this order: the ``client_state`` token we attached when
dialing, a pending call for the leg id, then an outbound attempt recorded
when the leg was initiated. Events that match nothing are ignored.

Inbound flow::

    caller initiated -> answer -> caller answered -> create conference
    -> dial AI (SIP) -> AI answered -> join AI to conference

Outbound flow::

    dial contact -> contact answered -> create conference -> dial AI
    -> AI answered -> join AI to conference

Agent outbound flow (the AI platform dials out through our number)::

    AI trunk initiated -> answer -> AI answered -> create conference
    -> dial contact -> contact answered -> join contact to conference

Remote failures abandon the current step. Nothing is retried and completed
steps are not rolled back.
"""
import asyncio
import logging
import time
import uuid
from typing import Optional, Union

from app.services.agents.directory import AgentConfig, AgentDirectory
from app.services.correlation.models import (
    ActiveConversation,
    ExpectedCallback,
    OutboundAttempt,
    PendingCall,
    TranscriptEntry,
    address_key,
)
from app.services.correlation.store import CorrelationStore
from app.services.notifications import supervisor
from app.services.notifications.supervisor import SupervisorNotifier
from app.services.orchestration.stages import ConversationDirection, ConversationStage
from app.services.persistence.calls import CallHistory
from app.services.telephony.agent_platform import AgentCallResult, AgentPlatformClient
from app.services.telephony.call_control import CallControlClient, CallControlResult
from app.services.telephony.client_state import (
    AiLegState,
    ClientState,
    HumanTakeoverState,
    OutboundContactState,
    decode_client_state,
    encode_client_state,
)
from app.services.telephony.events import CallEvent, is_sip_address

logger = logging.getLogger(__name__)

AGENT_CALLBACK = "agent_callback"


class CallOrchestrator:
    """Drives multi-leg conversations through call control, one event at a time."""

    def __init__(
        self,
        store: CorrelationStore,
        call_control: CallControlClient,
        agents: AgentDirectory,
        notifier: SupervisorNotifier,
        agent_platform: Optional[AgentPlatformClient] = None,
        history: Optional[CallHistory] = None,
        sip_host: str = "sip.rtc.elevenlabs.io:5061",
        expected_callback_ttl: float = 60.0,
        transcribe_outbound_calls: bool = True,
        ended_leg_retention: float = 600.0,
    ):
        self.store = store
        self.call_control = call_control
        self.agents = agents
        self.notifier = notifier
        self.agent_platform = agent_platform
        self.history = history
        self.sip_host = sip_host
        self.expected_callback_ttl = expected_callback_ttl
        self.transcribe_outbound_calls = transcribe_outbound_calls
        self.ended_leg_retention = ended_leg_retention

    async def handle_event(self, event: CallEvent) -> None:
        """Run the handler for one webhook event. Never raises."""
        handlers = {
            "initiated": self.on_initiated,
            "answered": self.on_answered,
            "hangup": self.on_hangup,
            "transcription": self.on_transcription,
        }
        handler = handlers.get(event.kind)
        if handler is None or not event.call_control_id:
            return
        try:
            await handler(event)
        except Exception as e:
            logger.error(
                f"[ORCHESTRATOR] Error handling {event.event_type} - "
                f"CallControlId: {event.call_control_id}, Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )

    # call.initiated

    async def on_initiated(self, event: CallEvent) -> None:
        leg = event.call_control_id
        if event.is_inbound:
            await self._on_inbound_initiated(event)
        elif event.is_outbound:
            record = decode_client_state(event.client_state)
            if is_sip_address(event.to):
                await self._record("initiated", leg, direction=event.direction, from_number=event.from_address,
                                   to_number=event.to, role="ai")
                return
            # Providers do not always echo client_state, so remember what we
            # dialed this leg for until it answers.
            callback = self.store.take_expected_callback(
                address_key("outbound", event.from_address, event.to), self.expected_callback_ttl
            )
            if record is None and callback is not None:
                record = callback.record
            if record is not None:
                self.store.put_outbound_attempt(OutboundAttempt(
                    call_control_id=leg,
                    from_address=event.from_address,
                    to_address=event.to,
                    record=record,
                ))
            await self._record("initiated", leg, direction=event.direction, from_number=event.from_address,
                               to_number=event.to, role=_role_for(record))

    async def _on_inbound_initiated(self, event: CallEvent) -> None:
        leg = event.call_control_id
        callback = self.store.take_expected_callback(
            address_key("inbound", event.from_address, event.to), self.expected_callback_ttl
        )
        if callback is not None:
            # The AI platform calling out through our number, as requested by
            # start_agent_outbound_call.
            agent = self.agents.get(callback.record.agent_number)
            if agent is None:
                logger.warning(f"[ORCHESTRATOR] Callback for unknown agent {callback.record.agent_number}, ignoring")
                return
            pending = PendingCall(
                call_control_id=leg,
                caller=event.from_address,
                agent_number=agent.phone_number,
                agent=agent,
                flow=AGENT_CALLBACK,
                contact=callback.record.contact,
            )
            role = "ai"
            logger.info(f"[ORCHESTRATOR] {agent.agent_name} calling out to {pending.contact} through {event.to}")
        else:
            agent = self.agents.get(event.to)
            if agent is None:
                logger.info(f"[ORCHESTRATOR] Inbound call to {event.to} - not an agent number, ignoring")
                return
            pending = PendingCall(
                call_control_id=leg,
                caller=event.from_address,
                agent_number=agent.phone_number,
                agent=agent,
            )
            role = "caller"
            logger.info(f"[ORCHESTRATOR] Inbound call from {event.from_address} to {agent.agent_name} ({event.to})")

        if not self.store.put_pending(pending):
            logger.debug(f"[ORCHESTRATOR] Duplicate call.initiated for {leg}, ignoring")
            return
        await self._record("initiated", leg, direction=event.direction, from_number=event.from_address,
                           to_number=event.to, role=role)

        result = await self.call_control.answer(leg)
        if not result.success:
            self.store.take_pending(leg)
            logger.error(f"[ORCHESTRATOR] Failed to answer {leg}: {result.error}")

    # call.answered

    async def on_answered(self, event: CallEvent) -> None:
        leg = event.call_control_id
        record = decode_client_state(event.client_state)
        if record is None:
            pending = self.store.take_pending(leg)
            if pending is not None:
                await self._record("in_progress", leg, role="ai" if pending.flow == AGENT_CALLBACK else "caller")
                if pending.flow == AGENT_CALLBACK:
                    await self._start_agent_callback_conversation(pending)
                else:
                    await self._start_inbound_conversation(pending)
                return
            attempt = self.store.take_outbound_attempt(leg)
            if attempt is None:
                logger.debug(f"[ORCHESTRATOR] call.answered for untracked leg {leg}, ignoring")
                return
            record = attempt.record
        else:
            self.store.take_outbound_attempt(leg)

        if not self.store.claim_leg(leg):
            logger.debug(f"[ORCHESTRATOR] Duplicate call.answered for {leg}, ignoring")
            return

        if isinstance(record, AiLegState):
            await self._on_ai_leg_answered(leg, record)
        elif isinstance(record, HumanTakeoverState):
            await self._on_human_answered(leg, record)
        elif isinstance(record, OutboundContactState):
            await self._on_contact_answered(leg, record)

    async def _start_inbound_conversation(self, pending: PendingCall) -> None:
        leg = pending.call_control_id
        conversation = await self._create_conversation(
            leg,
            direction=ConversationDirection.INBOUND,
            agent=pending.agent,
            counterpart=pending.caller,
            caller_call_control_id=leg,
        )
        if conversation is not None:
            await self._dial_agent(conversation, pending.agent)

    async def _start_agent_callback_conversation(self, pending: PendingCall) -> None:
        leg = pending.call_control_id
        conversation = await self._create_conversation(
            leg,
            direction=ConversationDirection.AGENT_OUTBOUND,
            agent=pending.agent,
            counterpart=pending.contact,
            ai_call_control_id=leg,
            ai_connected=True,
        )
        if conversation is None:
            return
        await self._record("connected", leg, conference_id=conversation.conference_id, role="ai")

        record = OutboundContactState(
            agent_number=pending.agent_number,
            contact=pending.contact,
            conference_id=conversation.conference_id,
        )
        if self.store.is_leg_ended(leg):
            logger.info(f"[ORCHESTRATOR] {leg} hung up while {conversation.conference_id} was being created, not dialing {pending.contact}")
            return
        result = await self._dial_plain(pending.contact, pending.agent_number, record)
        if not result.success:
            logger.error(f"[ORCHESTRATOR] Failed to dial contact {pending.contact}: {result.error}")
            return
        self.store.update_conversation(conversation.conference_id, caller_call_control_id=result.call_control_id)
        logger.info(f"[ORCHESTRATOR] Waiting for {pending.contact} to answer. Conference: {conversation.conference_id}")

    async def _on_contact_answered(self, leg: str, record: OutboundContactState) -> None:
        await self._record("in_progress", leg, role="contact")
        if record.conference_id:
            # The AI is already waiting in the conference.
            result = await self.call_control.join_conference(record.conference_id, leg)
            if not result.success:
                logger.error(f"[ORCHESTRATOR] Failed to join {record.contact} to {record.conference_id}: {result.error}")
                return
            if self.store.is_leg_ended(leg):
                logger.info(f"[ORCHESTRATOR] {record.contact} hung up while joining {record.conference_id}")
                return
            conversation = self.store.update_conversation(
                record.conference_id,
                caller_call_control_id=leg,
                stage=ConversationStage.BRIDGED,
            )
            await self._record("connected", leg, conference_id=record.conference_id, role="contact")
            logger.info(f"[ORCHESTRATOR] Call connected! {record.contact} <-> AI (conference: {record.conference_id})")
            self._notify_outbound_connected(conversation, leg, record.conference_id)
            return

        agent = self.agents.get(record.agent_number)
        if agent is None:
            logger.warning(f"[ORCHESTRATOR] Contact answered for unknown agent {record.agent_number}, ignoring")
            return
        conversation = await self._create_conversation(
            leg,
            direction=ConversationDirection.OUTBOUND,
            agent=agent,
            counterpart=record.contact,
            caller_call_control_id=leg,
        )
        if conversation is None:
            return
        if self.transcribe_outbound_calls:
            result = await self.call_control.start_transcription(conversation.conference_id, leg)
            if not result.success:
                logger.warning(f"[ORCHESTRATOR] Transcription not started for {conversation.conference_id}: {result.error}")
        await self._dial_agent(conversation, agent)

    async def _on_ai_leg_answered(self, leg: str, record: AiLegState) -> None:
        logger.info(f"[ORCHESTRATOR] AI answered! Joining to conference {record.conference_id}")
        result = await self.call_control.join_conference(record.conference_id, leg)
        if not result.success:
            logger.error(f"[ORCHESTRATOR] Failed to join AI to conference {record.conference_id}: {result.error}")
            return

        current = self.store.find_conversation_by_conference_id(record.conference_id)
        if current is None:
            # Anchor hung up while the AI leg was ringing.
            logger.info(f"[ORCHESTRATOR] AI joined {record.conference_id}, but the conversation has ended")
            return
        if self.store.is_leg_ended(leg):
            logger.info(f"[ORCHESTRATOR] AI leg {leg} hung up while joining {record.conference_id}")
            return
        stage = ConversationStage.HUMAN_JOINED if current.human_joined else ConversationStage.BRIDGED
        conversation = self.store.update_conversation(
            record.conference_id, ai_call_control_id=leg, ai_connected=True, stage=stage
        )

        await self._record("connected", leg, conference_id=record.conference_id, role="ai")
        if conversation.caller_call_control_id:
            await self._record("connected", conversation.caller_call_control_id,
                               conference_id=record.conference_id)
        logger.info(
            f"[ORCHESTRATOR] Call connected! {conversation.counterpart} <-> {conversation.agent_name} "
            f"(conference: {record.conference_id})"
        )
        if conversation.direction == ConversationDirection.OUTBOUND:
            self._notify_outbound_connected(conversation, conversation.caller_call_control_id, record.conference_id)

    async def _on_human_answered(self, leg: str, record: HumanTakeoverState) -> None:
        result = await self.call_control.join_conference(record.conference_id, leg)
        if not result.success:
            logger.error(f"[ORCHESTRATOR] Failed to join human to conference {record.conference_id}: {result.error}")
            return
        if self.store.is_leg_ended(leg):
            logger.info(f"[ORCHESTRATOR] {record.counterpart} hung up while joining {record.conference_id}")
            return
        self.store.update_conversation(
            record.conference_id,
            human_call_control_id=leg,
            human_joined=True,
            stage=ConversationStage.HUMAN_JOINED,
        )
        await self._record("connected", leg, conference_id=record.conference_id, role="human")
        logger.info(f"[ORCHESTRATOR] {record.counterpart} joined conference {record.conference_id}")
        self.notifier.notify(
            supervisor.USER_JOINED,
            conference_id=record.conference_id,
            call_control_id=leg,
            address=record.counterpart,
        )

    async def _create_conversation(
        self, anchor: str, direction: ConversationDirection, agent: AgentConfig, counterpart: Optional[str], **slots
    ) -> Optional[ActiveConversation]:
        """Create a conference anchored on a leg and track it."""
        name = f"call_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"
        logger.info(f"[ORCHESTRATOR] Creating conference: {name} with {anchor}")
        result = await self.call_control.create_conference(name, anchor)
        if not result.success:
            logger.error(f"[ORCHESTRATOR] Failed to create conference: {result.error}")
            return None
        if self.store.is_leg_ended(anchor):
            logger.info(f"[ORCHESTRATOR] {anchor} hung up while {result.conference_id} was being created, dropping it")
            return None

        conversation = ActiveConversation(
            anchor_call_control_id=anchor,
            conference_id=result.conference_id,
            conference_name=name,
            direction=direction,
            stage=ConversationStage.CONFERENCE_CREATED,
            agent_number=agent.phone_number,
            agent_name=agent.agent_name,
            counterpart=counterpart,
            **slots,
        )
        self.store.put_conversation(conversation)
        logger.info(f"[ORCHESTRATOR] Conference created, {anchor} auto-joined: {result.conference_id}")
        return conversation

    async def _dial_agent(self, conversation: ActiveConversation, agent: AgentConfig) -> None:
        """Dial the agent's SIP trunk; its call.answered completes the bridge."""
        token = encode_client_state(AiLegState(
            conference_id=conversation.conference_id,
            counterpart=conversation.counterpart,
            agent_number=agent.phone_number,
        ))
        if self.store.is_leg_ended(conversation.anchor_call_control_id):
            logger.info(f"[ORCHESTRATOR] {conversation.anchor_call_control_id} already hung up, not dialing {agent.agent_name}")
            return
        logger.info(f"[ORCHESTRATOR] Dialing {agent.agent_name}...")
        result = await self.call_control.dial_sip(agent.sip_uri(self.sip_host), agent.phone_number, token)
        if not result.success:
            logger.error(f"[ORCHESTRATOR] Failed to dial {agent.agent_name}: {result.error}")
            return

        current = self.store.find_conversation_by_conference_id(conversation.conference_id)
        if current is None:
            return
        changes = {"ai_call_control_id": result.call_control_id}
        if not current.ai_connected:
            changes["stage"] = ConversationStage.AI_DIALED
        self.store.update_conversation(conversation.conference_id, **changes)
        logger.info(f"[ORCHESTRATOR] Waiting for {agent.agent_name} to answer. Conference: {conversation.conference_id}")

    async def _dial_plain(
        self, to: str, from_address: str, record: Union[OutboundContactState, HumanTakeoverState]
    ) -> CallControlResult:
        """Dial a phone number with a token, plus an address-keyed fallback."""
        key = address_key("outbound", from_address, to)
        self.store.put_expected_callback(ExpectedCallback(key=key, record=record))
        result = await self.call_control.dial(to, from_address, encode_client_state(record))
        if not result.success:
            self.store.take_expected_callback(key)
        return result

    def _notify_outbound_connected(
        self, conversation: Optional[ActiveConversation], contact_leg: Optional[str], conference_id: str
    ) -> None:
        self.notifier.notify(
            supervisor.OUTBOUND_CONNECTED,
            conference_id=conference_id,
            call_control_id=contact_leg,
            ai_call_control_id=conversation.ai_call_control_id if conversation else None,
            contact=conversation.counterpart if conversation else None,
            agent_number=conversation.agent_number if conversation else None,
        )

    # call.hangup

    async def on_hangup(self, event: CallEvent) -> None:
        leg = event.call_control_id
        self.store.end_leg(leg)
        self.store.take_outbound_attempt(leg)

        if self.store.take_pending(leg) is not None:
            logger.info(f"[ORCHESTRATOR] {leg} hung up before the conference was set up")

        role = None
        anchor = False
        conversation = self.store.delete_conversation(leg)
        if conversation is not None:
            anchor = True
            conversation.stage = ConversationStage.TERMINATED
            role = conversation.participant_role(leg) or "anchor"
            logger.info(f"[ORCHESTRATOR] Anchor {leg} hung up, ending conversation {conversation.conference_id}")
            transcript = self.store.drop_transcript(conversation.conference_id)
            if transcript:
                text = "\n".join(f"{entry.speaker}: {entry.text}" for entry in transcript)
                await self._record("transcript", leg, transcript=text)
        else:
            previous = self.store.find_conversation_by_participant(leg)
            if previous is not None:
                role = previous.participant_role(leg)
                conversation = self.store.clear_participant(leg)
                logger.info(
                    f"[ORCHESTRATOR] {role} leg {leg} left conference {previous.conference_id}, "
                    f"conversation continues"
                )

        await self._record("completed", leg, hangup_cause=event.hangup_cause)
        self.notifier.notify(
            supervisor.CALL_ENDED,
            call_control_id=leg,
            conference_id=conversation.conference_id if conversation else None,
            role=role,
            conversation_ended=anchor,
            hangup_cause=event.hangup_cause,
        )

    # call.transcription

    async def on_transcription(self, event: CallEvent) -> None:
        if not event.transcript:
            return
        leg = event.call_control_id
        conversation = None
        if event.conference_id:
            conversation = self.store.find_conversation_by_conference_id(event.conference_id)
        if conversation is None:
            conversation = self.store.find_conversation_by_participant(leg)
        if conversation is None:
            logger.debug(f"[ORCHESTRATOR] Transcription for untracked leg {leg}, ignoring")
            return

        speaker = "agent" if leg == conversation.ai_call_control_id else "caller"
        if event.is_final:
            self.store.append_transcript(
                conversation.conference_id,
                TranscriptEntry(speaker=speaker, text=event.transcript, call_control_id=leg),
            )
        self.notifier.notify(
            supervisor.TRANSCRIPT,
            conference_id=conversation.conference_id,
            call_control_id=leg,
            speaker=speaker,
            text=event.transcript,
            is_final=event.is_final,
        )

    # Expected callback expiry

    def sweep_expired(self) -> int:
        """Drop expired callbacks and long-ended legs."""
        callbacks = self.store.sweep_expired(self.expected_callback_ttl)
        legs = self.store.sweep_ended_legs(self.ended_leg_retention)
        return callbacks + legs

    async def run_sweeper(self, interval: float) -> None:
        """Sweep expired callbacks forever; cancel the task to stop."""
        while True:
            await asyncio.sleep(interval)
            self.sweep_expired()

    # Operator actions

    async def start_outbound_call(self, agent_number: str, to: str) -> CallControlResult:
        """Call a contact; the AI is dialed in once the contact answers."""
        agent = self.agents.get(agent_number)
        if agent is None:
            return CallControlResult.failure(f"Unknown agent number {agent_number}")
        logger.info(f"[ORCHESTRATOR] Calling {to} for {agent.agent_name}")
        result = await self._dial_plain(to, agent.phone_number, OutboundContactState(
            agent_number=agent.phone_number, contact=to,
        ))
        if not result.success:
            logger.error(f"[ORCHESTRATOR] Failed to call {to}: {result.error}")
        return result

    async def start_agent_outbound_call(self, agent_number: str, to: str) -> AgentCallResult:
        """Have the AI platform call a contact through our number."""
        agent = self.agents.get(agent_number)
        if agent is None:
            return AgentCallResult(success=False, error=f"Unknown agent number {agent_number}")
        if self.agent_platform is None:
            return AgentCallResult(success=False, error="AI platform client not configured")

        # The platform's trunk reaches us as an inbound leg from the agent
        # number to the contact.
        key = address_key("inbound", agent.phone_number, to)
        self.store.put_expected_callback(ExpectedCallback(
            key=key,
            record=OutboundContactState(agent_number=agent.phone_number, contact=to),
        ))
        result = await self.agent_platform.outbound_call(agent, to)
        if not result.success:
            self.store.take_expected_callback(key)
            logger.error(f"[ORCHESTRATOR] {agent.agent_name} could not call {to}: {result.error}")
        return result

    async def start_human_takeover(self, conference_id: str, to: str) -> CallControlResult:
        """Dial a human into a running conversation."""
        conversation = self.store.find_conversation_by_conference_id(conference_id)
        if conversation is None:
            return CallControlResult.failure(f"Unknown conference {conference_id}")
        logger.info(f"[ORCHESTRATOR] Dialing {to} into conference {conference_id}")
        result = await self._dial_plain(to, conversation.agent_number, HumanTakeoverState(
            conference_id=conference_id, counterpart=to,
        ))
        if not result.success:
            logger.error(f"[ORCHESTRATOR] Failed to dial {to} for takeover: {result.error}")
        return result

    async def _record(self, operation: str, call_control_id: str, **kwargs) -> None:
        if self.history is not None:
            await getattr(self.history, operation)(call_control_id, **kwargs)


def _role_for(record: Optional[ClientState]) -> Optional[str]:
    if isinstance(record, HumanTakeoverState):
        return "human"
    if isinstance(record, OutboundContactState):
        return "contact"
    return None
