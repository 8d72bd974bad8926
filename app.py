import click
from flask import Flask, g, jsonify
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from config import Config
from routes import health_bp, auth_bp, booking_bp, payments_bp, coupons_bp, subscriptions_bp

from models import db
from billing.errors import BookingError
from billing.gateway import init_gateway
from security.session import session_invalidated
from utils.auth_context import load_current_user
from utils.audit import log_event


def create_app(config_object=Config, gateway=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(coupons_bp)
    app.register_blueprint(subscriptions_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Payment processor (Stripe unless a test double is passed in)
    init_gateway(app, gateway)

    @app.before_request
    def _load_user():
        load_current_user()

    @session_invalidated.connect_via(app)
    def _drop_auth_state(sender, user_id=None, reason=None, **extra):
        g.user = None
        g.session = None
        log_event("SESSION_INVALIDATED", user_id=user_id, entity="session", metadata={"reason": reason})

    register_error_handlers(app)

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app


def register_error_handlers(app):
    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if exc.status_code >= 500:
            app.logger.error("%s: %s", exc.code, exc.message)
        else:
            app.logger.info("%s: %s", exc.code, exc.message)
        return jsonify(exc.payload()), exc.status_code

    @app.errorhandler(HTTPException)
    def _http_error(exc):
        return jsonify(success=False, error=exc.description, code=exc.name.upper().replace(" ", "_")), exc.code

    @app.errorhandler(Exception)
    def _unhandled(exc):
        # never leak internals to the client
        app.logger.exception("Unhandled error")
        db.session.rollback()
        return jsonify(success=False, error="Internal server error", code="INTERNAL_ERROR"), 500


#-------------------------
def register_cli(app):
    @app.cli.command("seed-coupons")
    def seed_coupons_command():
        """Insert or refresh the stock promo codes."""
        from utils.seed import seed_coupons

        count = seed_coupons()
        click.echo(f"Seeded {count} promo codes")

    @app.cli.command("complete-booking")
    @click.argument("booking_id", type=int)
    def complete_booking_command(booking_id):
        """Mark a confirmed booking as completed (fulfilment step)."""
        from billing.bookings import complete_booking

        try:
            booking = complete_booking(booking_id)
        except BookingError as exc:
            raise click.ClickException(exc.message)
        log_event("BOOKING_COMPLETE", user_id=booking.user_id, entity="booking", entity_id=booking.id)
        click.echo(f"Booking {booking.id} is now {booking.status}")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
