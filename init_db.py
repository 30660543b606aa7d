# init_db.py
from dotenv import load_dotenv
load_dotenv()

from wheelz.database import engine, init_models

print("Creating tables on", engine.url.render_as_string(hide_password=True))
init_models()
print("Tables created/verified.")
