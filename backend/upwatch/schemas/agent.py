"""Agent schemas for API."""
from typing import Optional, List
from pydantic import BaseModel, Field


class AgentRegister(BaseModel):
    """Schema for agent self-registration."""
    token: str = Field(..., min_length=1)  # Shared registration token
    name: str = Field(..., min_length=1, max_length=255)
    hostname: Optional[str] = None
    ip_addresses: List[str] = Field(default_factory=list)
    os: Optional[str] = None
    version: Optional[str] = None


class CpuMetrics(BaseModel):
    usage: Optional[float] = None  # percent
    cores: Optional[int] = None
    model_name: Optional[str] = None


class MemoryMetrics(BaseModel):
    total: Optional[int] = None
    used: Optional[int] = None
    free: Optional[int] = None
    usage_rate: Optional[float] = None  # percent


class DiskMetrics(BaseModel):
    device: Optional[str] = None
    mount_point: Optional[str] = None
    total: Optional[int] = None
    used: Optional[int] = None
    free: Optional[int] = None
    usage_rate: Optional[float] = None  # percent


class NetworkMetrics(BaseModel):
    interface: Optional[str] = None
    bytes_sent: Optional[int] = None
    bytes_recv: Optional[int] = None


class AgentStatusReport(BaseModel):
    """Heartbeat pushed by an agent with its host info and latest metrics."""
    token: str = Field(..., min_length=1)  # The agent's own token
    hostname: Optional[str] = None
    ip_addresses: List[str] = Field(default_factory=list)
    os: Optional[str] = None
    version: Optional[str] = None
    cpu: Optional[CpuMetrics] = None
    memory: Optional[MemoryMetrics] = None
    disks: List[DiskMetrics] = Field(default_factory=list)
    network: List[NetworkMetrics] = Field(default_factory=list)


class AgentRegisterResponse(BaseModel):
    """Registration result with the agent's own token."""
    id: int
    token: str


class AgentStatusResponse(BaseModel):
    """Acknowledgement of a heartbeat."""
    agent_id: int
    status: str
    alerts_sent: int = 0
