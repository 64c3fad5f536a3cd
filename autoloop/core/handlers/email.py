"""
Template (email) node handler.

Order of checks:
1. duplicate suppression: a `sent` log already exists for (business, template)
2. cooldown: any email was sent to the business within cooldownDays
3. send through Gmail, retrying transient network errors

Suppressed sends count as success. A failed send walks the `error` edges;
if the node has none, the run is marked failed.
"""

from ...models.business import Business
from ...models.email import EmailTemplate
from ..exceptions import NodeConfigurationError
from ..integrations.gmail import SendResult, send_with_retry
from ..outreach import has_sent_template, record_send, render_template, sent_within_days
from ..run import NodeOutcome, WorkflowRun


async def handle_template(node, run: WorkflowRun) -> NodeOutcome:
    config = node.config
    if not config.template_id:
        raise NodeConfigurationError("No template selected", node_id=node.id)

    db = run.require_db()
    ctx = run.context

    template = db.get(EmailTemplate, config.template_id)
    if template is None:
        return _send_failed(node, run, f"Email template {config.template_id} not found")

    if config.prevent_duplicates and has_sent_template(db, ctx.business_id, template.id):
        run.log(f'⏭️ Skipping: template "{template.name}" was already sent to this business')
        return NodeOutcome.proceed()

    if config.cooldown_days > 0 and sent_within_days(db, ctx.business_id, config.cooldown_days):
        run.log(f"⏭️ Skipping: an email was sent to this business in the last {config.cooldown_days} days")
        return NodeOutcome.proceed()

    user = run.user
    subject = render_template(template.subject, ctx, user)
    body = render_template(template.body, ctx, user)
    to = ctx.business_data.get("email")

    run.log(f'Sending email template "{template.name}" to {to or "(no address)"}')

    if not to:
        result = SendResult(success=False, error="Business has no email address")
    elif user is None or not user.access_token:
        result = SendResult(success=False, error="Gmail is not connected for this account")
    else:
        result = await send_with_retry(
            run.integrations.email_sender,
            to=to,
            subject=subject,
            body=body,
            access_token=user.access_token,
            sender_address=user.email,
            initial_delay=run.integrations.email_retry_delay,
        )

    business = db.get(Business, ctx.business_id) if ctx.business_id else None
    record_send(db, ctx.user_id, business, ctx.business_id, template, subject, body, result)

    if not result.success:
        return _send_failed(node, run, f"Failed to send email: {result.error}")

    run.log(f"✅ Email sent to {to}")
    return NodeOutcome.proceed()


def _send_failed(node, run: WorkflowRun, message: str) -> NodeOutcome:
    if run.graph.outgoing(node.id, "error"):
        run.soft_error(f"{message} (following error path)")
    else:
        run.error(message)
    return NodeOutcome.route("error", warn_if_missing=False)
