"""
whatsappNode and linkedinMessage handlers. Both abort the run on failure.
"""

from ..exceptions import LinkedInError, NodeConfigurationError, WhatsAppError
from ..resolver import interpolate, resolve_value, stringify
from ..run import NodeOutcome, WorkflowRun


async def handle_whatsapp(node, run: WorkflowRun) -> NodeOutcome:
    config = node.config
    ctx = run.context

    phone = ctx.business_data.get("phone")
    if not phone:
        raise WhatsAppError("Business has no phone number", node_id=node.id)
    if not config.template_name:
        raise NodeConfigurationError("No WhatsApp template selected", node_id=node.id)

    # Template parameters are positional: {{1}}, {{2}}, ...
    parameters = [
        {"type": "text", "text": stringify(resolve_value(path, ctx))}
        for path in config.variables
    ]
    components = [{"type": "body", "parameters": parameters}] if parameters else []

    run.log(f"Sending WhatsApp template {config.template_name} to {phone}")
    result = await run.integrations.whatsapp.send_template(
        to=phone,
        template_name=config.template_name,
        template_language=config.template_language,
        components=components,
    )
    if not result.success:
        raise WhatsAppError(f"WhatsApp send failed: {result.error}", node_id=node.id)

    run.log(f"✅ WhatsApp message sent to {phone}")
    return NodeOutcome.proceed()


async def handle_linkedin_message(node, run: WorkflowRun) -> NodeOutcome:
    config = node.config
    ctx = run.context

    user = run.user
    if user is None or not user.linkedin_cookie:
        raise LinkedInError("LinkedIn session cookie not configured", node_id=node.id)
    if run.integrations.linkedin is None:
        raise LinkedInError("LinkedIn automation is not available", node_id=node.id)

    profile_url = interpolate(config.profile_url, ctx).strip()
    message = interpolate(config.message, ctx)
    if not profile_url:
        raise LinkedInError("No LinkedIn profile URL resolved", node_id=node.id)

    run.log(f"Sending LinkedIn connection request to {profile_url}")
    result = await run.integrations.linkedin.send_connection_request(user.linkedin_cookie, profile_url, message)
    for line in result.logs:
        run.log(line)

    ctx.set_variable("lastMessageStatus", "sent" if result.success else "failed")
    if not result.success:
        raise LinkedInError(f"LinkedIn message failed: {result.error}", node_id=node.id)

    run.log("✅ LinkedIn message sent")
    return NodeOutcome.proceed()
