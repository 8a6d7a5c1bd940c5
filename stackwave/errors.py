"""Exception hierarchy shared by the composition core, stages and backends."""


class StackwaveError(Exception):
    """Base class for every error raised by stackwave."""


class ValidationError(StackwaveError, ValueError):
    """Invalid or missing configuration, raised before any deployment side effect."""


class DependencyError(StackwaveError):
    """A dependency set cannot be turned into a deployment order."""


class DependencyCycleError(DependencyError):
    """The dependency graph contains a cycle."""

    def __init__(self, plugins):
        self.plugins = list(plugins)
        names = ", ".join(plugin_label(p) for p in self.plugins)
        super().__init__(f"dependency cycle among: {names}")


class NotConfiguredError(StackwaveError):
    """A plugin was used before configure() was called for the current stage."""

    def __init__(self, plugin):
        self.plugin = plugin
        super().__init__(f"{plugin_label(plugin)}: plugin not configured")


class NotDeployedError(StackwaveError):
    """Runtime metadata was read before the plugin was materialized on the target."""

    def __init__(self, plugin, target):
        self.plugin = plugin
        self.target = target
        super().__init__(f"{plugin_label(plugin)}: {target} not deployed")


class ExportNotFoundError(StackwaveError):
    """A ref or attribute export could not be resolved."""

    def __init__(self, owner, ref, att=None, consumer=None, reason=None):
        self.owner = owner
        self.ref = ref
        self.att = att
        self.consumer = consumer
        what = f"att {att} for ref {ref}" if att is not None else f"ref {ref}"
        message = f"no such export: {what} (owner: {owner})"
        if consumer is not None:
            message += f" (consumer: {consumer})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class StackOperationError(StackwaveError):
    """A stack create/update/describe failed on the deployment backend."""

    def __init__(self, stack_name, operation, detail):
        self.stack_name = stack_name
        self.operation = operation
        self.detail = detail
        super().__init__(f"stack '{stack_name}': {operation} failed: {detail}")


class StackTimeoutError(StackOperationError):
    """Waiting for a stack operation to complete exceeded its bound."""

    def __init__(self, stack_name, operation, timeout, last_status=None):
        self.timeout = timeout
        self.last_status = last_status
        super().__init__(stack_name, operation, f"timed out after {timeout}s (last status: '{last_status}')")


class CommandError(StackwaveError):
    """An external command exited with a non-zero return code."""

    def __init__(self, command, returncode, stderr=""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"command failed with exit code {returncode}: {command}"
        if stderr.strip():
            message += f"\n{stderr.strip()}"
        super().__init__(message)


class StageTargetError(StackwaveError, TypeError):
    """A stage was used as the wrong target (e.g. a local stage as a cloud stage)."""


class DeployTimeoutError(StackwaveError):
    """A deploy pass did not finish before its deadline."""

    def __init__(self, stage_name, deadline):
        self.stage_name = stage_name
        self.deadline = deadline
        super().__init__(f"stage '{stage_name}': deploy did not finish within {deadline}s")


class ServiceNotReadyError(StackwaveError):
    """A local service did not become ready in time."""

    def __init__(self, plugin, target, timeout):
        self.plugin = plugin
        self.target = target
        self.timeout = timeout
        super().__init__(f"{plugin_label(plugin)}: {target} not ready after {timeout}s")


def plugin_label(plugin) -> str:
    """Human-readable identity of a plugin, e.g. 'Bucket (bucket/media)'."""
    try:
        display_name = plugin.display_name
        name = plugin.name
        instance_name = plugin.instance_name
    except AttributeError:
        return repr(plugin)
    if instance_name:
        return f"{display_name} ({name}/{instance_name})"
    return f"{display_name} ({name})"
