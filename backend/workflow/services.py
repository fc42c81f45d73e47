import json
import logging
from typing import Dict, Any, List, Optional

from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

from platformapp.services.audit import log_system_event

from .actions import execute_action
from .conditions import evaluate_conditions
from .events import emit_event
from .exceptions import WorkflowExecutionError
from .models import EventType, RunStatus, Workflow, WorkflowRun

logger = logging.getLogger(__name__)

CONDITIONS_NOT_MET = "conditions not met"
RESULT_SEPARATOR = " | "


def _trigger_context(trigger_type: str, payload: Dict[str, Any]) -> str:
    return json.dumps({"triggerType": str(trigger_type), "payload": payload}, cls=DjangoJSONEncoder)


def _record_run(*, tenant, workflow: Workflow, event, status: str, trigger_type: str,
                payload: Dict[str, Any], result: Optional[str] = None, error: Optional[str] = None) -> WorkflowRun:
    return WorkflowRun.objects.create(
        tenant=tenant,
        workflow=workflow,
        event=event,
        status=status,
        trigger_event=_trigger_context(trigger_type, payload),
        result=result,
        error=error,
        executed_at=timezone.now(),
    )


def _announce_run(run: WorkflowRun, trigger_type: str) -> None:
    emit_event(
        tenant_id=run.tenant_id,
        event_type=EventType.WORKFLOW_RUN,
        payload={
            "workflowId": str(run.workflow_id),
            "runId": str(run.id),
            "status": str(run.status),
            "triggerType": str(trigger_type),
        },
    )


def execute_workflow(*, tenant, workflow: Workflow, trigger_type: str, payload: Dict[str, Any],
                     initiated_by: Optional[Dict[str, Any]] = None, event=None) -> WorkflowRun:
    """
    Evaluate one workflow against a trigger payload and record exactly one run.

    Actions run strictly in order; the first failing action aborts the rest,
    is recorded as a FAILED run and is re-raised. Side effects of earlier
    actions are kept.
    """
    payload = payload or {}

    if not evaluate_conditions(payload, workflow.parsed_conditions()):
        run = _record_run(tenant=tenant, workflow=workflow, event=event, status=RunStatus.SKIPPED,
                          trigger_type=trigger_type, payload=payload, result=CONDITIONS_NOT_MET)
        _announce_run(run, trigger_type)
        logger.info("Workflow %s skipped for %s: %s", workflow.id, trigger_type, CONDITIONS_NOT_MET)
        return run

    results: List[str] = []
    try:
        for action in workflow.parsed_actions():
            results.append(execute_action(tenant=tenant, action=action, payload=payload))
    except Exception as exc:
        run = _record_run(tenant=tenant, workflow=workflow, event=event, status=RunStatus.FAILED,
                          trigger_type=trigger_type, payload=payload,
                          error=str(exc) or exc.__class__.__name__)
        log_system_event(tenant=tenant, entity="workflow-run", entity_id=str(workflow.id),
                         summary=f"Workflow {workflow.name} failed", initiated_by=initiated_by,
                         meta={"runId": str(run.id)})
        _announce_run(run, trigger_type)
        logger.warning("Workflow %s failed for %s: %s", workflow.id, trigger_type, run.error)
        raise

    run = _record_run(tenant=tenant, workflow=workflow, event=event, status=RunStatus.SUCCESS,
                      trigger_type=trigger_type, payload=payload, result=RESULT_SEPARATOR.join(results))
    log_system_event(tenant=tenant, entity="workflow-run", entity_id=str(workflow.id),
                     summary=f"Workflow {workflow.name} executed", initiated_by=initiated_by,
                     meta={"runId": str(run.id)})
    _announce_run(run, trigger_type)
    logger.info("Workflow %s succeeded for %s", workflow.id, trigger_type)
    return run


def trigger_automation(*, tenant, trigger_type: str, payload: Dict[str, Any],
                       initiated_by: Optional[Dict[str, Any]] = None, event=None) -> List[WorkflowRun]:
    """
    Run every enabled workflow of the tenant subscribed to `trigger_type`.

    A failing workflow does not stop its siblings; once all have run, the
    failures are raised together as WorkflowExecutionError.
    """
    workflows = Workflow.objects.filter(tenant=tenant, enabled=True, trigger_type=str(trigger_type)).order_by("created_at")

    runs: List[WorkflowRun] = []
    failures = []
    for wf in workflows:
        try:
            runs.append(execute_workflow(tenant=tenant, workflow=wf, trigger_type=trigger_type,
                                         payload=payload, initiated_by=initiated_by, event=event))
        except Exception as exc:
            failures.append((wf, exc))

    if failures:
        raise WorkflowExecutionError(failures)
    return runs


def run_workflow_once(*, tenant, workflow_id, trigger_type: str, payload: Dict[str, Any],
                      initiated_by: Optional[Dict[str, Any]] = None) -> Optional[WorkflowRun]:
    """Manual test-run. Returns None when the workflow is not in the tenant."""
    try:
        workflow = Workflow.objects.filter(tenant=tenant, pk=workflow_id).first()
    except ValidationError:
        workflow = None
    if workflow is None:
        return None
    return execute_workflow(tenant=tenant, workflow=workflow, trigger_type=trigger_type,
                            payload=payload, initiated_by=initiated_by)
