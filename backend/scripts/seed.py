"""Seed the database with an admin token and an example review workflow."""
from __future__ import annotations

import os
import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import select

from backend.flowgate import create_app
from backend.flowgate.extensions import db
from backend.flowgate.models.auth import ApiToken
from backend.flowgate.models.workflow import Workflow, WorkflowStep
from backend.flowgate.utils.auth import generate_token, hash_token

EXAMPLE_WORKFLOW_NAME = "Invoice Approval"
ADMIN_TOKEN_NAME = "seed-admin"

EXAMPLE_STEPS = (
    {"label": "Invoice received", "type": "trigger"},
    {
        "label": "Extract line items",
        "type": "action",
        "assigned_to_type": "ai",
        "assigned_to_name": "Extractor",
        "requirements": {"blueprint": {"greenList": ["read_documents"], "redList": ["send_email"]}},
    },
    {
        "label": "Approve payment",
        "type": "action",
        "assigned_to_type": "human",
        "assigned_to_name": "Finance",
    },
    {"label": "Done", "type": "end"},
)


def _ensure_admin_token(organization_id: str) -> str | None:
    """Create an admin token for the organization unless one already exists."""

    existing = db.session.scalars(
        select(ApiToken).where(
            ApiToken.organization_id == organization_id, ApiToken.name == ADMIN_TOKEN_NAME
        )
    ).first()
    if existing is not None:
        return None

    plaintext = generate_token()
    db.session.add(
        ApiToken(
            organization_id=organization_id,
            name=ADMIN_TOKEN_NAME,
            role="admin",
            token_hash=hash_token(plaintext),
        )
    )
    return plaintext


def _ensure_example_workflow(organization_id: str) -> bool:
    workflow = db.session.scalars(
        select(Workflow).where(
            Workflow.organization_id == organization_id, Workflow.name == EXAMPLE_WORKFLOW_NAME
        )
    ).first()
    if workflow is not None:
        return False

    workflow = Workflow(organization_id=organization_id, name=EXAMPLE_WORKFLOW_NAME)
    workflow.steps = [
        WorkflowStep(position=index, **step) for index, step in enumerate(EXAMPLE_STEPS)
    ]
    db.session.add(workflow)
    return True


def main() -> None:
    organization_id = os.getenv("SEED_ORGANIZATION_ID", "demo-org")
    app = create_app()
    with app.app_context():
        token = _ensure_admin_token(organization_id)
        created_workflow = _ensure_example_workflow(organization_id)
        db.session.commit()

        print(
            "Seed completed",
            f"organization={organization_id}",
            f"workflows created={int(created_workflow)}",
        )
        if token is not None:
            print(f"admin token (shown once): {token}")


if __name__ == "__main__":
    main()
