"""API routers for deptflow."""

from . import requests
from . import policies
