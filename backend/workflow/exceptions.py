class AutomationError(Exception):
    """Base class for failures raised by the automation engine."""


class ActionError(AutomationError):
    """A workflow action could not be carried out."""


class ReferencedEntityMissing(ActionError):
    """An action points at a company, contact, deal or ticket that does not exist in the tenant."""


class InvalidEventState(AutomationError):
    pass


class WorkflowExecutionError(AutomationError):
    """
    One or more matched workflows failed for a trigger.
    Every matched workflow has already been attempted when this is raised.
    """

    def __init__(self, failures):
        self.failures = list(failures)  # [(workflow, exception), ...]
        summary = "; ".join(f"{wf.name}: {exc}" for wf, exc in self.failures)
        super().__init__(summary or "Workflow execution failed")


class WebhookDeliveryError(AutomationError):
    """A subscriber endpoint was unreachable or answered with a non-2xx status."""
