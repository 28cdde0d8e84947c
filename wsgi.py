import os

from petmarket import create_app, db

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

# Tables are created on startup; schema changes ship as new tables or
# nullable columns only.
with app.app_context():
    db.create_all()

if __name__ == "__main__":
    app.run()
