import os

# Must be set before claimcoach.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
import pytest_asyncio
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, List
from uuid import UUID, uuid4
from unittest.mock import AsyncMock, MagicMock

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import claimcoach.models  # noqa: F401
from claimcoach.main import app
from claimcoach.database import get_db, Base
from claimcoach.adjudication.schemas import (
    ComparisonSummary,
    Discrepancy,
    EstimateComparison,
    IndustryEstimate,
    IndustryEstimateResult,
)
from claimcoach.adjudication.verdict import VerdictAnalysis, VerdictStatus
from claimcoach.carrier_estimates.models import ParseStatus
from claimcoach.carrier_estimates.schemas import LineItem, ParsedEstimate
from claimcoach.claims.models import Claim, ClaimStatus, LossType
from claimcoach.core.events.bus import DomainEvent, EventBus
from claimcoach.storage.service import FileStore, get_file_store
from claimcoach.workflow.adapters import DatabaseCollaborators
from claimcoach.workflow.registry import WorkflowRegistry, get_workflow_registry


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """In-memory SQLite shared by every session of one test."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class RecordingBus(EventBus):
    """EventBus that keeps every published event for assertions."""

    def __init__(self):
        super().__init__()
        self.events: List[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.events.append(event)
        await super().publish(event)

    def types(self) -> list:
        return [e.event_type for e in self.events]


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

def make_analysis(status: VerdictStatus = VerdictStatus.DISPUTE_OFFER, **overrides) -> VerdictAnalysis:
    data = {
        "status": status,
        "plain_english_summary": "The carrier left out the roof decking and underpriced shingles.",
        "total_contractor_estimate": 18500.0,
        "total_carrier_estimate": 12000.0,
        "total_delta": 6500.0,
        "top_delta_drivers": [{
            "line_item": "Roof decking",
            "contractor_price": 4200.0,
            "carrier_price": 0.0,
            "delta": 4200.0,
            "reason": "Omitted",
        }],
        "coverage_disputes": [],
        "required_next_steps": ["Send the dispute letter to the adjuster"],
    }
    data.update(overrides)
    return VerdictAnalysis.model_validate(data)


def make_parsed_estimate() -> ParsedEstimate:
    return ParsedEstimate(
        line_items=[
            LineItem(description="Remove shingles", quantity=20, unit="SQ", unit_cost=75, total=1500, category="Roofing"),
            LineItem(description="Install shingles", quantity=20, unit="SQ", unit_cost=525, total=10500, category="Roofing"),
        ],
        total=12000,
    )


def make_industry_estimate() -> IndustryEstimate:
    return IndustryEstimate(
        line_items=[
            LineItem(description="Remove shingles", quantity=20, unit="SQ", unit_cost=85, total=1700, category="Roofing"),
            LineItem(description="Install shingles", quantity=20, unit="SQ", unit_cost=590, total=11800, category="Roofing"),
            LineItem(description="Roof decking", quantity=640, unit="SF", unit_cost=2.5, total=1916.67, category="Roofing"),
        ],
        subtotal=15416.67,
        overhead_profit=3083.33,
        total=18500,
    )


def make_comparison() -> EstimateComparison:
    return EstimateComparison(
        discrepancies=[Discrepancy(
            item="Roof decking",
            industry_price=1916.67,
            carrier_price=0,
            delta=1916.67,
            justification="Decking replacement is required by code on a full tear-off",
        )],
        summary=ComparisonSummary(total_industry=18500, total_carrier=12000, total_delta=6500),
    )


def fake_agent(final_state: dict) -> MagicMock:
    """Stand-in for a compiled LangGraph agent."""
    agent = MagicMock()
    agent.ainvoke = AsyncMock(return_value=final_state)
    return agent


@pytest.fixture
def parser_agent() -> MagicMock:
    return fake_agent({"parsed_estimate": make_parsed_estimate(), "errors": []})


@pytest.fixture
def estimator_agent() -> MagicMock:
    return fake_agent({"industry_estimate": make_industry_estimate(), "errors": []})


@pytest.fixture
def adjudicator_agent() -> MagicMock:
    return fake_agent({
        "comparison": make_comparison(),
        "verdict": make_analysis(VerdictStatus.DISPUTE_OFFER),
        "messages": [],
        "errors": [],
    })


@pytest.fixture
def writers() -> dict:
    return {
        "dispute_writer": AsyncMock(return_value="Dear Adjuster, we dispute the offer."),
        "pitch_writer": AsyncMock(return_value="We recommend retaining counsel."),
    }


@pytest.fixture
def store(tmp_path) -> FileStore:
    return FileStore(tmp_path / "uploads")


@pytest_asyncio.fixture
async def claim(db_session) -> Claim:
    """A claim in audit_pending with a contractor scope, ready for adjudication."""
    claim = Claim(
        claim_number="CC-0001",
        loss_type=LossType.WEATHER,
        incident_date=date(2026, 5, 14),
        description="Hail damage to the roof",
        scope_summary="Full tear-off and replacement of a 20 SQ asphalt shingle roof",
        contractor_estimate_total=Decimal("18500.00"),
        status=ClaimStatus.AUDIT_PENDING,
        current_step=6,
        steps_completed=[1, 2, 3, 4, 5],
    )
    db_session.add(claim)
    await db_session.commit()
    await db_session.refresh(claim)
    return claim


# ---------------------------------------------------------------------------
# Workflow collaborators
# ---------------------------------------------------------------------------

class FakeCollaborators:
    """In-memory collaborators; every method is an AsyncMock so calls can be asserted."""

    def __init__(self, analysis: VerdictAnalysis = None, parse_statuses=None):
        self.document_id = uuid4()
        self.audit_report_id = uuid4()
        self.analysis = analysis or make_analysis()
        statuses = list(parse_statuses or [ParseStatus.COMPLETED])

        self.request_upload_destination = AsyncMock(
            return_value={"write_target": "claims/x/estimate.pdf", "document_id": self.document_id}
        )
        self.transfer = AsyncMock(return_value=None)
        self.confirm_upload = AsyncMock(return_value=None)
        self.parse_document = AsyncMock(return_value=None)
        self.get_parse_status = AsyncMock(side_effect=[{"status": s} for s in statuses])
        self.generate_industry_estimate = AsyncMock(
            return_value=IndustryEstimateResult(
                audit_report_id=self.audit_report_id,
                line_items=make_industry_estimate().line_items,
                subtotal=15416.67,
                overhead_profit=3083.33,
                total=18500,
            )
        )
        self.run_analysis = AsyncMock(side_effect=lambda claim_id, report_id: self.analysis)
        self.generate_dispute_letter = AsyncMock(return_value="Dear Adjuster, we dispute the offer.")
        self.generate_owner_pitch = AsyncMock(return_value="We recommend retaining counsel.")
        self.acknowledge_owner_pitch = AsyncMock(return_value=None)
        self.supersede_report = AsyncMock(return_value=None)
        self.update_claim_step = AsyncMock(return_value=None)

    def called(self) -> list:
        return [
            name for name, value in vars(self).items()
            if isinstance(value, AsyncMock) and value.await_count
        ]


@pytest.fixture
def collaborators() -> FakeCollaborators:
    return FakeCollaborators()


async def no_sleep(_seconds: float) -> None:
    return None


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

@pytest.fixture
def db_collaborators(session_factory, bus, store, parser_agent, estimator_agent, adjudicator_agent, writers):
    return DatabaseCollaborators(
        session_factory,
        bus=bus,
        store=store,
        audit_options={"estimator": estimator_agent, "adjudicator": adjudicator_agent, **writers},
        document_options={"parser": parser_agent},
        parse_in_background=False,
    )


@pytest.fixture
def registry(session_factory, db_collaborators, bus) -> WorkflowRegistry:
    return WorkflowRegistry(
        session_factory,
        db_collaborators,
        bus=bus,
        poll_interval=0.01,
        poll_timeout=1.0,
        call_timeout=None,
        sleep_fn=no_sleep,
    )


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession, registry: WorkflowRegistry, store: FileStore) -> AsyncGenerator[AsyncClient, None]:
    """Client for testing API endpoints."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_workflow_registry] = lambda: registry
    app.dependency_overrides[get_file_store] = lambda: store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    await registry.drain()
    app.dependency_overrides.clear()
