from mangum import Mangum
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from banking.api import create_app

app = create_app(root_path="/api")

handler = Mangum(app)
