"""Agent configuration synchronisation.

The local configuration row is the source of truth. A sync pushes a
projection of it onto the engine workflow; failing to push never rolls back
the local save, and pushing again is always safe.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .client import WorkflowEngineClient
from .errors import EngineError, SaveError, SyncError, ValidationError
from .persistence import AgentConfiguration, ControlRepository

logger = logging.getLogger(__name__)

TOOL_CREDENTIAL_KEYS: Dict[str, List[str]] = {
    "serpApiTool": ["serpapi_api_key"],
    "wolframAlphaTool": ["wolfram_alpha_app_id"],
    "gmailTool": ["gmail_credentials"],
    "googleSheetsTool": ["google_sheets_credentials"],
    "googleCalendarTool": ["google_calendar_credentials"],
    "notionTool": ["notion_api_key"],
    "slackTool": ["slack_bot_token"],
    "discordTool": ["discord_bot_token"],
    "telegramTool": ["telegram_bot_token"],
    "whatsappTool": ["whatsapp_api_token"],
    "airtableTool": ["airtable_api_key"],
    "githubTool": ["github_token"],
    "jiraTool": ["jira_api_token"],
    "trelloTool": ["trello_api_key"],
    "hubspotTool": ["hubspot_api_key"],
    "salesforceTool": ["salesforce_credentials"],
    "zendeskTool": ["zendesk_api_token"],
    "stripeTool": ["stripe_api_key"],
    "twilioTool": ["twilio_credentials"],
    "openWeatherTool": ["openweather_api_key"],
    "youtubeTool": ["youtube_api_key"],
}


def provider_credential_key(provider: str) -> str:
    return f"{provider}_api_key"


def render_system_message(config: AgentConfiguration) -> str:
    """Join prompt, personality, action instructions and behavior rules."""
    sections: List[str] = []
    if config.system_prompt.strip():
        sections.append(config.system_prompt.strip())
    if config.personality.strip():
        sections.append(f"Personality: {config.personality.strip()}")
    if config.action_instructions.strip():
        sections.append(f"Action instructions:\n{config.action_instructions.strip()}")
    if config.behavior_rules:
        bullets = [
            f"{'✓' if rule.type == 'do' else '✗'} {rule.instruction.strip()}"
            for rule in config.behavior_rules
            if rule.instruction.strip()
        ]
        if bullets:
            sections.append("Behavior rules:\n" + "\n".join(bullets))
    return "\n\n".join(sections)


def collect_credentials(config: AgentConfiguration) -> Dict[str, str]:
    """Credential map for the provider plus every enabled tool, keys sorted.

    Only credentials that are actually stored are included.
    """
    wanted = [provider_credential_key(config.provider)]
    for tool in config.enabled_tools:
        wanted.extend(TOOL_CREDENTIAL_KEYS.get(tool, []))
    merged: Dict[str, str] = {}
    for key in sorted(set(wanted)):
        value = config.credential_for(key)
        if value:
            merged[key] = value
    return merged


def build_projection(config: AgentConfiguration) -> Dict[str, Any]:
    """Engine-facing projection of ``config``.

    A pure function: equal configurations give byte-identical JSON under
    :func:`serialize_projection`.
    """
    projection = {
        "aiCredentials": collect_credentials(config),
        "aiModel": config.model,
        "contextWindow": config.retention.context_window,
        "maxTokens": config.max_tokens,
        "memorySessionId": config.memory_session_key,
        "memoryType": config.memory_type,
        "provider": config.provider,
        "systemPrompt": render_system_message(config),
        "temperature": config.temperature,
        "toolsEnabled": sorted(set(config.enabled_tools)),
    }
    return dict(sorted(projection.items()))


def serialize_projection(projection: Dict[str, Any]) -> str:
    return json.dumps(projection, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


class SyncOutcome(BaseModel):
    """Result of :meth:`ConfigurationSynchronizer.save_and_sync`."""

    saved: bool
    synced: bool
    config: Optional[AgentConfiguration] = None
    error: Optional[str] = None


class ConfigurationSynchronizer:
    def __init__(
        self,
        repository: ControlRepository,
        client: Optional[WorkflowEngineClient] = None,
    ) -> None:
        self._repository = repository
        self._client = client

    async def save(self, config: AgentConfiguration) -> AgentConfiguration:
        """Persist ``config`` locally. Raises :class:`SaveError` on failure."""
        stamped = config.touched()
        try:
            await self._repository.save_agent_config(stamped)
        except Exception as exc:
            logger.error(
                f"Failed to save agent config for {config.customer_product_id}: {exc}"
            )
            raise SaveError(
                f"could not save configuration for {config.customer_product_id}: {exc}"
            ) from exc
        logger.info(f"Saved agent config for {config.customer_product_id}")
        return stamped

    async def sync(
        self, workflow_id: Optional[str], config: AgentConfiguration
    ) -> Dict[str, Any]:
        """Push the projection of ``config`` onto ``workflow_id``."""
        workflow_id = workflow_id or config.workflow_id
        if not workflow_id:
            raise ValidationError("workflow_id is required to sync a configuration")
        if self._client is None:
            raise SyncError("no engine client configured", workflow_id=workflow_id)
        projection = build_projection(config)
        try:
            result = await self._client.sync_config(workflow_id, projection)
        except EngineError as exc:
            logger.warning(f"Config sync to workflow {workflow_id} failed: {exc}")
            raise SyncError(str(exc), workflow_id=workflow_id) from exc
        logger.info(
            f"Synced agent config for {config.customer_product_id} to workflow {workflow_id}"
        )
        return result

    async def resync(
        self, workflow_id: Optional[str], customer_product_id: str
    ) -> Dict[str, Any]:
        """Recompute the projection from the stored row and push it again."""
        config = await self._repository.get_agent_config(customer_product_id)
        if config is None:
            raise ValidationError(
                f"no stored configuration for {customer_product_id}"
            )
        return await self.sync(workflow_id, config)

    async def save_and_sync(
        self, config: AgentConfiguration, workflow_id: Optional[str] = None
    ) -> SyncOutcome:
        """Save, then sync. A save failure propagates; a sync failure is reported."""
        saved = await self.save(config)
        target = workflow_id or saved.workflow_id
        if not target:
            return SyncOutcome(
                saved=True, synced=False, config=saved, error="no workflow linked"
            )
        try:
            await self.sync(target, saved)
        except SyncError as exc:
            return SyncOutcome(saved=True, synced=False, config=saved, error=str(exc))
        return SyncOutcome(saved=True, synced=True, config=saved)
