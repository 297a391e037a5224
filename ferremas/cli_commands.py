"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-admin: Create an administrador user
- flask replay-notifications: Re-process FAILED Mercado Pago notifications
"""

import click
import re
from sqlalchemy.exc import IntegrityError
from ferremas.database import create_all, get_session
from ferremas.models import User, UserRole


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table that does not exist yet."""
        create_all()
        click.echo(click.style('✅ Tablas creadas', fg='green'))

    @app.cli.command('create-admin')
    @click.option('--email', prompt=True, help='Admin email address')
    @click.option('--name', default='Administrador', show_default=True, help='Display name')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Admin password')
    def create_admin(email, name, password):
        """Create a new administrador user."""
        db_session = get_session()

        # Validate email format
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('❌ Email inválido. Use formato: user@example.com', fg='red'))
            return

        # Validate password length
        if len(password) < 6:
            click.echo(click.style('❌ La contraseña debe tener al menos 6 caracteres.', fg='red'))
            return

        email = email.strip().lower()
        if db_session.query(User).filter_by(email=email).first():
            click.echo(click.style(f'❌ Ya existe un usuario con el email: {email}', fg='red'))
            return

        try:
            admin = User(email=email, name=name, role=UserRole.ADMINISTRADOR.value, active=True)
            admin.set_password(password)

            db_session.add(admin)
            db_session.commit()

            click.echo(click.style('\n✅ Administrador creado exitosamente!', fg='green', bold=True))
            click.echo(f'   Email: {email}')
            click.echo(f'   ID: {admin.id}')

        except IntegrityError as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error al crear administrador: {str(e.orig)}', fg='red'))

    @app.cli.command('replay-notifications')
    @click.option('--limit', default=50, show_default=True, help='Maximum notifications to replay')
    def replay_notifications(limit):
        """Re-process FAILED Mercado Pago notifications."""
        from ferremas.services.mercadopago_client import get_gateway_client
        from ferremas.services.payment_service import replay_failed_notifications

        results = replay_failed_notifications(get_session(), get_gateway_client(), limit=limit)
        if not results:
            click.echo('No hay notificaciones fallidas.')
            return

        for result in results:
            color = 'red' if result['status'] == 'FAILED' else 'green'
            click.echo(click.style(
                f"  #{result['notification_id']} {result['event_type']} {result['resource_id']}: {result['status']}",
                fg=color
            ))
        failed = sum(1 for r in results if r['status'] == 'FAILED')
        click.echo(f'\nReprocesadas: {len(results)}  Fallidas: {failed}')
