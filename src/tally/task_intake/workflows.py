"""Default finance workflow catalogue."""

import uuid

from .models import Workflow, WorkflowField, WorkflowStage


def _stages(*names: str) -> list[WorkflowStage]:
    return [
        WorkflowStage(id=str(uuid.uuid4()), name=name, order=order)
        for order, name in enumerate(names, start=1)
    ]


def _field(
    name: str, field_type: str, required: bool = False, options: list[str] | None = None
) -> WorkflowField:
    return WorkflowField(
        id=str(uuid.uuid4()),
        name=name,
        type=field_type,
        required=required,
        options=list(options or []),
    )


def default_workflows() -> list[Workflow]:
    """Build fresh copies of the six default workflows (new IDs on every call)."""
    return [
        Workflow(
            id=str(uuid.uuid4()),
            name="Invoice Generation",
            slug="invoice-generation",
            description="Track invoice generation for multiple customers and batch operations",
            stages=_stages("Draft", "Review", "Sent", "Paid"),
            fields=[
                _field("Invoice Number", "text", required=True),
                _field("Customer Name", "text", required=True),
                _field("Amount", "number", required=True),
                _field("Due Date", "date", required=True),
                _field("Notes", "text"),
            ],
        ),
        Workflow(
            id=str(uuid.uuid4()),
            name="Payment Reconciliation",
            slug="payment-reconciliation",
            description="Match and reconcile invoices with payments received",
            stages=_stages("Pending", "Matching", "Reconciled", "Exception"),
            fields=[
                _field("Invoice Number", "text", required=True),
                _field("Expected Amount", "number", required=True),
                _field("Received Amount", "number"),
                _field("Payment Date", "date"),
                _field("Variance", "number"),
            ],
        ),
        Workflow(
            id=str(uuid.uuid4()),
            name="Monthly Close",
            slug="monthly-close",
            description="Recurring checklist for monthly financial close process",
            stages=_stages("Not Started", "In Progress", "Review", "Complete"),
            fields=[
                _field("Month", "text", required=True),
                _field("Year", "number", required=True),
                _field("Close Date", "date", required=True),
                _field("Checklist Items", "text"),
            ],
        ),
        Workflow(
            id=str(uuid.uuid4()),
            name="Annual Planning",
            slug="annual-planning",
            description="Project workflow for annual planning with milestones",
            stages=_stages("Planning", "Draft", "Review", "Approved", "Published"),
            fields=[
                _field("Year", "number", required=True),
                _field("Budget Owner", "text", required=True),
                _field("Department", "text"),
                _field("Milestone", "text"),
            ],
        ),
        Workflow(
            id=str(uuid.uuid4()),
            name="Model Change Control",
            slug="model-change",
            description="Track changes to financial models with version control and approvals",
            stages=_stages("Draft", "Testing", "Approval", "Deployed"),
            fields=[
                _field("Model Name", "text", required=True),
                _field("Version", "text", required=True),
                _field("Change Description", "text", required=True),
                _field(
                    "Impact Areas",
                    "multiselect",
                    options=["Revenue", "Expenses", "Headcount", "Cash Flow", "Other"],
                ),
                _field("Approvers", "multiselect", required=True),
            ],
        ),
        Workflow(
            id=str(uuid.uuid4()),
            name="Vendor Onboarding",
            slug="vendor-onboarding",
            description="Manage vendor onboarding and setup process",
            stages=_stages("Initial Contact", "Documentation", "Review", "Approved", "Active"),
            fields=[
                _field("Vendor Name", "text", required=True),
                _field("Contact Person", "text", required=True),
                _field(
                    "Category",
                    "select",
                    required=True,
                    options=["Software", "Services", "Supplies", "Consulting", "Other"],
                ),
                _field("Contract Value", "number"),
                _field("Payment Terms", "text"),
            ],
        ),
    ]
