import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import func

from velocityos.extensions import db
from velocityos.models.user import User
from velocityos.models.org import Org
from velocityos.models.org_membership import OrgMembership, ROLE_OWNER, ROLE_ADMIN, ROLE_MEMBER
from velocityos.models.workspace import GoogleWorkspaceToken
from velocityos.services import ai_operations, campaigns, google_workspace, workspace_import
from velocityos.utils.helpers import utcnow

# Endpoints the web client depends on
REQUIRED_ENDPOINTS = (
    ("GET", "/api/health"),
    ("POST", "/api/agent/restart"),
    ("POST", "/api/gateway/dispatch"),
    ("GET", "/api/analytics/dashboard"),
    ("POST", "/api/customer/create"),
    ("GET", "/api/customer/list"),
    ("POST", "/api/voc/feedback"),
    ("POST", "/api/payment/charge"),
    ("POST", "/api/campaign/start"),
    ("POST", "/api/outboundcall"),
    ("POST", "/api/stripe/create-checkout-session"),
    ("POST", "/api/stripe/webhooks"),
    ("POST", "/api/google-workspace/refresh-token"),
)


def _get_or_create_org(name: str) -> Org:
    org = db.session.query(Org).filter(Org.name == name).one_or_none()
    if org:
        return org
    org = Org(name=name, is_active=True)
    db.session.add(org)
    db.session.flush()
    return org


def _user_by_email(email: str) -> User | None:
    return db.session.query(User).filter(func.lower(User.email) == email.strip().lower()).one_or_none()


@click.group()
def bootstrap():
    """Bootstrap helpers."""

@bootstrap.command("owner")
@click.option("--org-name", required=True)
@click.option("--email", required=True)
@click.option("--firebase-uid", default=None, help="Link to an existing Firebase Auth user")
@with_appcontext
def bootstrap_owner(org_name, email, firebase_uid):
    # fail fast if user exists
    if _user_by_email(email):
        raise click.ClickException("User already exists")

    org = _get_or_create_org(org_name)

    user = User(email=email.strip().lower(), firebase_uid=firebase_uid, is_active=True, org_id=org.id)
    db.session.add(user)
    db.session.flush()
    org.owner_user_id = user.id

    db.session.add(OrgMembership(org_id=org.id, user_id=user.id, role=ROLE_OWNER))
    db.session.commit()

    click.echo(f"Bootstrap complete: org_id={org.id} owner_user_id={user.id} email={user.email}")


@click.group()
def members():
    """Org membership role ops."""

@members.command("promote")
@click.option("--org-id", type=int, required=True)
@click.option("--email", required=True)
@click.option("--role", type=click.Choice([ROLE_ADMIN, ROLE_OWNER]), required=True)
@with_appcontext
def members_promote(org_id, email, role):
    user = _user_by_email(email)
    if not user:
        raise click.ClickException("User not found")
    if not db.session.get(Org, org_id):
        raise click.ClickException(f"Org id {org_id} not found")
    m = db.session.query(OrgMembership).filter_by(org_id=org_id, user_id=user.id).one_or_none()
    if not m:
        m = OrgMembership(org_id=org_id, user_id=user.id, role=role)
        db.session.add(m)
    else:
        m.role = role
    db.session.commit()
    click.echo(f"Promoted {email} in org {org_id} to {role}")

@members.command("demote")
@click.option("--org-id", type=int, required=True)
@click.option("--email", required=True)
@with_appcontext
def members_demote(org_id, email):
    user = _user_by_email(email)
    if not user:
        raise click.ClickException("User not found")

    m = db.session.query(OrgMembership).filter_by(org_id=org_id, user_id=user.id).one_or_none()
    if not m:
        raise click.ClickException("Membership not found")

    # Safety rail: cannot demote last owner
    owners = db.session.query(OrgMembership).filter_by(org_id=org_id, role=ROLE_OWNER).count()
    if m.role == ROLE_OWNER and owners <= 1:
        raise click.ClickException("Refused: cannot demote the last owner of this org")

    m.role = ROLE_MEMBER
    db.session.commit()
    click.echo(f"Demoted {email} in org {org_id} to member")


@click.group("campaigns")
def campaigns_group():
    """Campaign delivery."""

@campaigns_group.command("dispatch")
@click.option("--limit", type=int, default=50, show_default=True)
@with_appcontext
def campaigns_dispatch(limit):
    n = campaigns.dispatch_due(limit=limit)
    click.echo(f"Dispatched {n} campaign(s)")


@click.group("workspace")
def workspace_group():
    """Google Workspace sync jobs."""

@workspace_group.command("sync")
@click.option("--limit", type=int, default=20, show_default=True)
@with_appcontext
def workspace_sync(limit):
    # Refresh tokens inside the expiry buffer first so imports see fresh credentials
    expiring = db.session.execute(
        db.select(GoogleWorkspaceToken).where(
            GoogleWorkspaceToken.expires_at <= utcnow() + google_workspace.EXPIRY_BUFFER,
            GoogleWorkspaceToken.refresh_token.is_not(None),
        )
    ).scalars().all()
    refreshed = sum(1 for tok in expiring if google_workspace.get_fresh_tokens(tok.user_id) is not None)
    n = workspace_import.run_pending(limit=limit)
    click.echo(f"Refreshed {refreshed}/{len(expiring)} token(s); ran {n} import(s)")


@click.group("ai")
def ai_group():
    """AI operation queue."""

@ai_group.command("drain")
@click.option("--limit", type=int, default=25, show_default=True)
@with_appcontext
def ai_drain(limit):
    n = ai_operations.drain_due(limit=limit)
    click.echo(f"Executed {n} operation(s)")


@click.group("routes")
def routes_group():
    """Route table checks."""

@routes_group.command("check")
@with_appcontext
def routes_check():
    registered = set()
    for rule in current_app.url_map.iter_rules():
        for method in rule.methods or ():
            registered.add((method, rule.rule))
    missing = []
    for method, path in REQUIRED_ENDPOINTS:
        found = (method, path) in registered
        if not found:
            missing.append(f"{method} {path}")
        click.echo(f"{'ok' if found else 'MISSING':8} {method:6} {path}")
    if missing:
        raise click.ClickException(f"{len(missing)} required endpoint(s) missing")
    click.echo("All required endpoints are registered")


def register_cli(app):
    app.cli.add_command(bootstrap)
    app.cli.add_command(members)
    app.cli.add_command(campaigns_group)
    app.cli.add_command(workspace_group)
    app.cli.add_command(ai_group)
    app.cli.add_command(routes_group)
