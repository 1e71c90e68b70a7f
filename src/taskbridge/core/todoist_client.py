import json
import logging
import threading
import uuid
from typing import Any

import requests

from .errors import RemoteNotFoundError, ValidationError
from .http import JsonHttpClient
from .ratelimit import RateLimiter

logger = logging.getLogger(__name__)

# Todoist rejects sync requests carrying more than this many commands.
MAX_COMMANDS_PER_REQUEST = 100


class TodoistClient:
    """Side B client speaking the Todoist sync (command batch) API."""

    def __init__(
        self,
        token: str,
        *,
        sync_url: str = "https://api.todoist.com/api/v1/sync",
        requests_per_second: float = 1.0,
        max_attempts: int = 4,
    ):
        self.token = token
        self.sync_url = sync_url
        self.api_url = sync_url.rsplit("/", 1)[0]
        self.limiter = RateLimiter(requests_per_second)
        self.max_attempts = max_attempts
        self._thread_local = threading.local()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            session = requests.Session()
            session.headers["Authorization"] = f"Bearer {self.token}"
            self._thread_local.session = session
        return self._thread_local.session

    def _http(self) -> JsonHttpClient:
        return JsonHttpClient(
            self._get_session(), self.limiter, max_attempts=self.max_attempts
        )

    def sync(
        self,
        sync_token: str = "*",
        resource_types: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Read resources.  ``"*"`` asks for a full sync; any other token
        returns only what changed since it was issued.
        """
        return self._http().request(
            "POST",
            self.sync_url,
            data={
                "sync_token": sync_token,
                "resource_types": json.dumps(
                    resource_types or ["items", "projects"]
                ),
            },
        )

    def submit_commands(
        self, commands: list[dict[str, Any]]
    ) -> dict[str, Any]:
        """
        Submit one batch of write commands.

        Returns the raw response carrying ``sync_status`` (command uuid ->
        ``"ok"`` or an error object) and ``temp_id_mapping``.
        """
        if len(commands) > MAX_COMMANDS_PER_REQUEST:
            raise ValueError(
                f"At most {MAX_COMMANDS_PER_REQUEST} commands per request, "
                f"got {len(commands)}"
            )
        if not commands:
            return {"sync_status": {}, "temp_id_mapping": {}}
        return self._http().request(
            "POST",
            self.sync_url,
            data={"commands": json.dumps(commands)},
        )

    def get_item(self, item_id: str) -> dict[str, Any]:
        """
        Fetch a single task by id, including completed ones.
        """
        data = self._http().request("GET", f"{self.api_url}/tasks/{item_id}")
        if not data or data.get("is_deleted"):
            raise RemoteNotFoundError(f"Todoist item {item_id} not found")
        return data

    def find_project(self, name: str) -> dict[str, Any] | None:
        data = self.sync(resource_types=["projects"])
        for project in data.get("projects", []):
            if project.get("name") == name and not project.get("is_deleted"):
                return project
        return None

    def create_project(self, name: str) -> str:
        """
        Create a project through a ``project_add`` command and return its id.
        """
        temp_id = str(uuid.uuid4())
        command_uuid = str(uuid.uuid4())
        response = self.submit_commands(
            [
                {
                    "type": "project_add",
                    "temp_id": temp_id,
                    "uuid": command_uuid,
                    "args": {"name": name},
                }
            ]
        )
        project_id = response.get("temp_id_mapping", {}).get(temp_id)
        status = response.get("sync_status", {}).get(command_uuid)
        if status != "ok" or not project_id:
            raise ValidationError(
                f"Todoist did not confirm creation of project '{name}'"
            )
        logger.info("Created Todoist project '%s' (%s)", name, project_id)
        return project_id
