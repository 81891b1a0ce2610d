import os

from app import create_app, db

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

# ── Ensure tables exist on startup (Render has no shell access) ──
with app.app_context():
    try:
        db.create_all()
    except Exception as e:
        app.logger.error(f"⚠️ Startup table check failed: {e}")

if __name__ == "__main__":
    app.run()
