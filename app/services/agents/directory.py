"""Agent phone number directory."""
import yaml
from pathlib import Path
from typing import Dict, List, Optional
from pydantic import BaseModel


class AgentConfig(BaseModel):
    """Conversational AI agent reachable through a public phone number."""

    phone_number: str
    phone_number_id: str  # ElevenLabs phone number id, also the SIP user part
    agent_id: str
    agent_name: str = "Agent"

    def sip_uri(self, sip_host: str) -> str:
        """SIP URI of the agent's trunk."""
        return f"sip:{self.phone_number_id}@{sip_host};transport=tls"


class AgentDirectory:
    """Agent configuration keyed by dialed phone number, loaded from YAML."""

    def __init__(self, agents_file: Optional[str] = None):
        """Initialize with optional agents file path."""
        if agents_file is None:
            agents_file = Path(__file__).parent / "data" / "agents.yaml"
        self.agents_file = Path(agents_file)
        self._agents: Optional[Dict[str, AgentConfig]] = None

    @classmethod
    def from_agents(cls, agents: List[AgentConfig]) -> "AgentDirectory":
        """Build a directory from already constructed agents."""
        directory = cls()
        directory._agents = {agent.phone_number: agent for agent in agents}
        return directory

    def _load(self) -> Dict[str, AgentConfig]:
        if self._agents is None:
            if not self.agents_file.exists():
                self._agents = {}
            else:
                with open(self.agents_file, "r") as f:
                    data = yaml.safe_load(f) or {}
                agents = [AgentConfig(**item) for item in data.get("agents", [])]
                self._agents = {agent.phone_number: agent for agent in agents}
        return self._agents

    def get(self, phone_number: Optional[str]) -> Optional[AgentConfig]:
        """Get the agent answering on a phone number."""
        if not phone_number:
            return None
        return self._load().get(phone_number.strip())

    def list_agents(self) -> List[AgentConfig]:
        """All configured agents."""
        return list(self._load().values())
