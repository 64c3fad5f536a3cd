"""
Logic and structural node handlers: start, condition, abSplit, custom, delay,
set and the structural markers (webhook, schedule, merge, splitInBatches,
filter).
"""

from ..conditions import evaluate
from ..exceptions import CustomCodeError, NodeConfigurationError
from ..run import NodeOutcome, WorkflowRun


async def handle_passthrough(node, run: WorkflowRun) -> NodeOutcome:
    """start and structural nodes only hand over to their default edges"""
    return NodeOutcome.proceed()


async def handle_condition(node, run: WorkflowRun) -> NodeOutcome:
    expression = node.config.condition
    result = evaluate(expression, run.context)
    run.log(f'Condition "{expression}" evaluated to: {"true" if result else "false"}')
    return NodeOutcome.route("true" if result else "false")


async def handle_ab_split(node, run: WorkflowRun) -> NodeOutcome:
    weight = node.config.weight
    draw = run.random() * 100
    handle = "a" if draw < weight else "b"
    run.log(f"🎲 A/B split drew {draw:.2f} (threshold {weight:g}) → path {handle.upper()}")
    return NodeOutcome.route(handle)


async def handle_custom(node, run: WorkflowRun) -> NodeOutcome:
    code = node.config.custom_code
    if not code:
        raise NodeConfigurationError("No custom code provided", node_id=node.id)

    run.log("Executing custom code in sandbox")
    try:
        result = await run.integrations.code_runner.run(code, run.context.business_data, run.context.variables)
    except CustomCodeError as e:
        e.node_id = node.id
        e.code = code
        raise

    run.context.replace_variables(result.variables)
    if not result.passed:
        run.log("Custom code returned false, stopping workflow")
        return NodeOutcome.stop()
    return NodeOutcome.proceed()


async def handle_delay(node, run: WorkflowRun) -> NodeOutcome:
    config = node.config
    seconds = config.total_seconds
    if seconds <= 0:
        run.log("Delay of 0 hours, continuing immediately")
        return NodeOutcome.proceed()

    hours = seconds / 3600
    run.log(f"⏸️ Scheduling delay of {hours:g} hours")
    return NodeOutcome.suspend(seconds)


async def handle_set(node, run: WorkflowRun) -> NodeOutcome:
    values = node.config.values
    if not values:
        run.warn("Set node has no values configured")
        return NodeOutcome.proceed()

    run.context.update_variables(values)
    run.log(f"Set variables: {', '.join(values.keys())}")
    return NodeOutcome.proceed()
