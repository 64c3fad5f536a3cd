"""
gemini / agent node handler.

Failures here never abort the run: a missing API key is skipped with a
warning, any other failure is recorded as a soft error.
"""

from ..exceptions import NodeConfigurationError
from ..resolver import interpolate
from ..run import NodeOutcome, WorkflowRun


async def handle_ai(node, run: WorkflowRun) -> NodeOutcome:
    config = node.config
    if not config.prompt:
        raise NodeConfigurationError("No AI prompt provided", node_id=node.id)

    ctx = run.context
    prompt = interpolate(config.prompt, ctx)
    if config.context:
        prompt = f"{prompt}\n\nContext:\n{interpolate(config.context, ctx)}"

    user = run.user
    api_key = (user.gemini_api_key if user is not None else None) or run.integrations.gemini_api_key
    if not api_key:
        run.warn("Gemini API key not configured, skipping AI generation")
        return NodeOutcome.proceed()

    run.log(f"Executing AI task with prompt: {prompt[:50]}...")
    try:
        client = run.integrations.ai_client_factory(api_key)
        text = await client.generate_content(
            prompt,
            system_prompt=interpolate(config.system_prompt, ctx) if config.system_prompt else None,
            model=config.model,
        )
    except Exception as e:
        run.soft_error(f"AI generation failed: {e}")
        return NodeOutcome.proceed()

    ctx.set_variable("aiResult", text)
    run.log(f"✅ AI generated {len(text)} characters")
    return NodeOutcome.proceed()
