"""Gumloop automation API client.

Every storage mutation (upload, folder creation, move, copy, delete, AI
sorting) runs as an asynchronous Gumloop pipeline: start a flow, get a run
id, then poll the run until it finishes.

The flows were built by hand in the Gumloop editor and their input names are
not consistent ("file url" vs "file_url", "user id" vs "user_id"). Those
spellings stay in this module.
"""

import json
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests

from sorta import Sorta
from utils.retry import (
    retry_on_transient_error,
    is_transient_network_error,
    log_retry,
    TRANSIENT_HTTP_STATUS_CODES,
)
from .tree import TreeNode, build_tree


API_BASE_URL = "https://api.gumloop.com/api/v1"

# Saved item ids of the flows in the Gumloop workspace
FLOW_IDS = {
    "UPLOAD_MANUAL": "crDVFy7CqANjvoKkWyCbdN",
    "UPLOAD_AUTO": "wdSh1nkbEFwus4kHRWSX18",
    "CREATE_FOLDER": "2fe4myZScFA8kYmYN2VgdG",
    "GET_STRUCTURE": "vkToNxWifgpDvhx9WbEotr",
    "DELETE": None,
    "MOVE": None,
    "COPY": None,
}

TERMINAL_STATES = {"DONE", "FAILED", "TERMINATED"}


class PipelineError(Exception):
    """Raised when a pipeline cannot be started, polled, or fails."""
    pass


@dataclass
class RunState:
    """Snapshot of a pipeline run."""
    run_id: str
    state: str
    outputs: Dict[str, Any] = field(default_factory=dict)
    log: List[str] = field(default_factory=list)
    created_ts: Optional[str] = None
    finished_ts: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "state": self.state,
            "outputs": self.outputs,
            "log": self.log,
            "created_ts": self.created_ts,
            "finished_ts": self.finished_ts,
        }


def _is_retryable_http_error(exc: Exception) -> bool:
    """Determine if a Gumloop HTTP error should be retried."""
    if isinstance(exc, ValueError):
        # Undecodable body; asking again will not help
        return False
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code in TRANSIENT_HTTP_STATUS_CODES
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    return is_transient_network_error(exc)


def _error_detail(exc: Exception) -> str:
    """Extract the API's error message from a failed request, if any."""
    response = getattr(exc, 'response', None)
    if response is not None:
        try:
            body = response.json()
        except ValueError:
            return response.text or str(exc)
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return json.dumps(body)
    return str(exc)


def flow_id(name: str) -> str:
    """Return the saved item id for a flow, honoring GUMLOOP_FLOW_<NAME>.

    Raises:
        PipelineError: If the flow has no id configured
    """
    value = os.environ.get(f"GUMLOOP_FLOW_{name}") or FLOW_IDS.get(name)
    if not value:
        raise PipelineError(
            f"No Gumloop flow configured for {name}. Set GUMLOOP_FLOW_{name}."
        )
    return value


def extract_listing(outputs: Optional[Dict[str, Any]]) -> List[str]:
    """Pull the list of object identifiers out of a structure run's outputs.

    The output node name is not fixed, so "output", "result" and "list" are
    tried before falling back to the first output. The value may be a list,
    a JSON-encoded list, or newline-separated text.
    """
    if not outputs:
        return []

    value = None
    for name in ("output", "result", "list"):
        if outputs.get(name):
            value = outputs[name]
            break
    if value is None:
        value = next(iter(outputs.values()), None)

    if isinstance(value, list):
        return [str(item) for item in value if item]
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return [str(item) for item in parsed if item]
        return [line.strip() for line in value.split('\n') if line.strip()]
    return []


def _absolute(path: str) -> str:
    return path if path.startswith('/') else f"/{path}"


class GumloopClient:
    """Client for the Gumloop pipeline API.

    Server-side only: the API key must never reach a browser.
    """

    def __init__(self, api_key: Optional[str] = None, user_id: Optional[str] = None,
                 project_id: Optional[str] = None, base_url: str = API_BASE_URL,
                 timeout: float = 30.0, session: Optional[requests.Session] = None) -> None:
        """Initialize the client.

        Args:
            api_key: API key (defaults to GUMLOOP_API_KEY)
            user_id: Gumloop account user id (defaults to GUMLOOP_USER_ID)
            project_id: Gumloop project id (defaults to GUMLOOP_PROJECT_ID)
            base_url: API root
            timeout: Per-request timeout in seconds
            session: requests session to use (tests pass a fake)
        """
        self.api_key = api_key or os.environ.get("GUMLOOP_API_KEY")
        self.user_id = user_id or os.environ.get("GUMLOOP_USER_ID")
        self.project_id = project_id or os.environ.get("GUMLOOP_PROJECT_ID")
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        if not self.api_key:
            Sorta.print_log("[yellow]Warning: GUMLOOP_API_KEY not set - pipeline calls will fail[/yellow]")
        if not self.user_id and not self.project_id:
            Sorta.print_log(
                "[yellow]Warning: set GUMLOOP_USER_ID or GUMLOOP_PROJECT_ID "
                "(see your Gumloop dashboard)[/yellow]"
            )

        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {self.api_key or ''}",
            "Content-Type": "application/json",
        })

    def close(self) -> None:
        self.session.close()

    def _account_params(self) -> Dict[str, str]:
        params = {}
        if self.user_id:
            params["user_id"] = self.user_id
        if self.project_id:
            params["project_id"] = self.project_id
        return params

    # =========================================================================
    # Run lifecycle
    # =========================================================================

    def start_flow(self, saved_item_id: str, inputs: Dict[str, str]) -> str:
        """Start a pipeline and return its run id.

        Not retried: a repeated POST would start a second run.
        """
        payload: Dict[str, Any] = {
            "saved_item_id": saved_item_id,
            "pipeline_inputs": [
                {"input_name": name, "value": value if value is not None else ""}
                for name, value in inputs.items()
            ],
        }
        payload.update(self._account_params())

        try:
            response = self.session.post(f"{self.base_url}/start_pipeline",
                                         json=payload, timeout=self.timeout)
            response.raise_for_status()
            run_id = response.json().get("run_id")
        except (requests.RequestException, ValueError) as e:
            raise PipelineError(f"Failed to start Gumloop flow: {_error_detail(e)}")

        if not run_id:
            raise PipelineError("Failed to start Gumloop flow: no run_id returned")

        Sorta.print_debug(f"Gumloop flow started: {saved_item_id} -> run_id: {run_id}")
        return run_id

    @retry_on_transient_error(
        is_retryable=_is_retryable_http_error,
        max_retries=3,
        base_delay=1.0,
        max_delay=10.0,
        on_retry=log_retry,
    )
    def _fetch_run(self, run_id: str) -> Dict[str, Any]:
        params = {"run_id": run_id}
        params.update(self._account_params())
        response = self.session.get(f"{self.base_url}/get_pl_run",
                                    params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json() or {}

    def get_run(self, run_id: str) -> RunState:
        """Get the current state of a run."""
        try:
            data = self._fetch_run(run_id)
        except (requests.RequestException, ValueError) as e:
            raise PipelineError(f"Failed to get run status: {_error_detail(e)}")

        return RunState(
            run_id=run_id,
            state=data.get("state") or "UNKNOWN",
            outputs=data.get("outputs") or {},
            log=data.get("log") or [],
            created_ts=data.get("created_ts"),
            finished_ts=data.get("finished_ts"),
        )

    def kill_run(self, run_id: str) -> None:
        """Cancel a running pipeline."""
        payload = {"run_id": run_id}
        payload.update(self._account_params())
        try:
            response = self.session.post(f"{self.base_url}/kill_pipeline",
                                         json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise PipelineError(f"Failed to kill run: {_error_detail(e)}")
        Sorta.print_debug(f"Gumloop run killed: {run_id}")

    def poll_run_until_done(self, run_id: str, interval: float = 2.0,
                            timeout: float = 300.0, max_polls: int = 150) -> RunState:
        """Poll a run until it reaches DONE, FAILED or TERMINATED.

        Returns:
            Final RunState of a DONE run

        Raises:
            PipelineError: If the run fails, is terminated, or does not finish
                within timeout seconds / max_polls polls
        """
        start = time.monotonic()

        for _ in range(max_polls):
            if time.monotonic() - start > timeout:
                raise PipelineError(f"Polling timed out after {timeout:g}s")

            run = self.get_run(run_id)
            if run.state == "FAILED":
                raise PipelineError(f"Pipeline failed: {json.dumps(run.log or run.outputs)}")
            if run.state == "TERMINATED":
                raise PipelineError("Pipeline was terminated")
            if run.state == "DONE":
                return run

            time.sleep(interval)

        raise PipelineError(f"Max polls ({max_polls}) exceeded while polling")

    # =========================================================================
    # Flows
    # =========================================================================

    def upload_manual(self, owner: str, file_name: str, path: str,
                      file_url: Optional[str] = None) -> str:
        """Upload a file into a folder the user picked."""
        inputs = {
            "user_id": owner,
            "file_name": file_name,
            "description": "",
            "path": _absolute(path),
        }
        if file_url:
            inputs["file url"] = file_url
            inputs["file_url"] = file_url
        return self.start_flow(flow_id("UPLOAD_MANUAL"), inputs)

    def upload_auto(self, owner: str, file_name: str, description: str = "",
                    file_url: Optional[str] = None) -> str:
        """Upload a file and let the AI pick its folder."""
        inputs = {
            "user_id": owner,
            "file name": file_name,
            "file_name": file_name,
            "description": description,
            "path": "",
        }
        if file_url:
            inputs["file url"] = file_url
            inputs["file_url"] = file_url
        return self.start_flow(flow_id("UPLOAD_AUTO"), inputs)

    def create_folder(self, owner: str, folder_path: str) -> str:
        return self.start_flow(flow_id("CREATE_FOLDER"), {
            "Folder path": _absolute(folder_path),
            "user id": owner,
        })

    def delete_path(self, owner: str, path: str) -> str:
        return self.start_flow(flow_id("DELETE"), {
            "user_id": owner,
            "path": _absolute(path),
        })

    def move_path(self, owner: str, path: str, destination: str) -> str:
        return self.start_flow(flow_id("MOVE"), {
            "user_id": owner,
            "path": _absolute(path),
            "destination": _absolute(destination),
        })

    def copy_path(self, owner: str, path: str, destination: str) -> str:
        return self.start_flow(flow_id("COPY"), {
            "user_id": owner,
            "path": _absolute(path),
            "destination": _absolute(destination),
        })

    def get_structure(self, owner: str) -> str:
        """Start the flow that lists every object of an owner."""
        return self.start_flow(flow_id("GET_STRUCTURE"), {"user_id": owner})

    def get_structure_and_parse(self, owner: str) -> Tuple[List[str], TreeNode]:
        """Run the structure flow, wait for it, and build the owner's tree.

        Returns:
            Tuple of (raw identifier list, root TreeNode)
        """
        run_id = self.get_structure(owner)
        run = self.poll_run_until_done(run_id, interval=1.0, timeout=60.0)
        raw = extract_listing(run.outputs)
        return (raw, build_tree(raw, owner))
