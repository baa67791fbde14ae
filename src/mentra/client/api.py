"""HTTP client for the Mentra API.

Wraps every endpoint in a method returning the decoded JSON body. The
bearer token is attached to each request once set (login or register
store it automatically).

Usage:
    from mentra.client import MentraClient

    with MentraClient("http://localhost:8000") as client:
        client.login("ana@example.com", "secret-pass")
        entries = client.list_entries(limit=5)
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30.0


class ApiError(Exception):
    """Raised when the API answers with an error or cannot be reached.

    status_code is None for transport failures.
    """

    def __init__(self, status_code: int | None, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}" if status_code else message)


class AuthenticationError(ApiError):
    """Raised on 401; the stored token has already been cleared."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(401, message)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase


class MentraClient:
    """Synchronous client with one method per endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: str | None = None,
        on_unauthorized: Callable[[], None] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.on_unauthorized = on_unauthorized
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def __enter__(self) -> MentraClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = self._http.request(method, path, params=params, json=json, headers=headers)
        except httpx.TransportError as e:
            logger.warning("client.network_error", method=method, path=path, error=str(e))
            raise ApiError(None, "Network error") from e

        if response.status_code == 401:
            self.token = None
            if self.on_unauthorized is not None:
                self.on_unauthorized()
            raise AuthenticationError(_error_message(response))
        if response.is_error:
            raise ApiError(response.status_code, _error_message(response))
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _get(self, path: str, **params: Any) -> Any:
        return self._request("GET", path, params=params)

    def _post(self, path: str, body: Any = None, **params: Any) -> Any:
        return self._request("POST", path, params=params, json=body)

    def _put(self, path: str, body: Any = None) -> Any:
        return self._request("PUT", path, json=body)

    def _delete(self, path: str) -> Any:
        return self._request("DELETE", path)

    # =========================================================================
    # AUTH
    # =========================================================================

    def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str = "",
        role: str = "student",
        grade_level: int | None = None,
    ) -> dict[str, Any]:
        result = self._post(
            "/api/auth/register",
            {
                "email": email,
                "password": password,
                "first_name": first_name,
                "last_name": last_name,
                "role": role,
                "grade_level": grade_level,
            },
        )
        self.token = result["access_token"]
        return result

    def login(self, email: str, password: str) -> dict[str, Any]:
        result = self._post("/api/auth/login", {"email": email, "password": password})
        self.token = result["access_token"]
        return result

    def logout(self) -> None:
        self.token = None

    def me(self) -> dict[str, Any]:
        return self._get("/api/auth/me")

    def refresh_token(self) -> dict[str, Any]:
        result = self._post("/api/auth/refresh")
        self.token = result["access_token"]
        return result

    def health(self) -> dict[str, Any]:
        return self._get("/api/health")

    # =========================================================================
    # JOURNAL
    # =========================================================================

    def create_entry(self, title: str, content: str, **fields: Any) -> dict[str, Any]:
        """Create a journal entry. fields: mood, emotions, tags, privacy_level, share_with_*."""
        return self._post("/api/journal/entries", {"title": title, "content": content, **fields})

    def list_entries(self, **filters: Any) -> dict[str, Any]:
        return self._get("/api/journal/entries", **filters)

    def get_entry(self, entry_id: str) -> dict[str, Any]:
        return self._get(f"/api/journal/entries/{entry_id}")

    def update_entry(self, entry_id: str, **fields: Any) -> dict[str, Any]:
        return self._put(f"/api/journal/entries/{entry_id}", fields)

    def delete_entry(self, entry_id: str) -> dict[str, Any]:
        return self._delete(f"/api/journal/entries/{entry_id}")

    def journal_stats(self, student_id: str | None = None, days: int = 30) -> dict[str, Any]:
        return self._get("/api/journal/stats", student_id=student_id, days=days)

    def tag_suggestions(self, prefix: str = "", limit: int = 10) -> list[str]:
        """Popular tags; an empty list if the request fails for any reason."""
        try:
            return self._get("/api/journal/tags/suggestions", prefix=prefix, limit=limit)["suggestions"]
        except (ApiError, ValueError, KeyError, TypeError) as e:
            logger.debug("client.suggestions_failed", error=str(e))
            return []

    def search_suggestions(self, query: str, limit: int = 5) -> list[str]:
        """Search completions; an empty list if the request fails for any reason."""
        try:
            return self._get("/api/journal/search/suggestions", q=query, limit=limit)["suggestions"]
        except (ApiError, ValueError, KeyError, TypeError) as e:
            logger.debug("client.suggestions_failed", error=str(e))
            return []

    # =========================================================================
    # PROBLEMS
    # =========================================================================

    def list_templates(
        self,
        subject: str | None = None,
        difficulty_level: str | None = None,
        problem_type: str | None = None,
    ) -> dict[str, Any]:
        return self._get(
            "/api/problems/templates",
            subject=subject,
            difficulty_level=difficulty_level,
            problem_type=problem_type,
        )

    def get_template(self, template_id: str) -> dict[str, Any]:
        return self._get(f"/api/problems/templates/{template_id}")

    def create_template(self, template: dict[str, Any]) -> dict[str, Any]:
        return self._post("/api/problems/templates", template)

    def start_session(self, template_id: str) -> dict[str, Any]:
        return self._post("/api/problems/sessions", {"template_id": template_id})

    def list_sessions(
        self,
        student_id: str | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        return self._get(
            "/api/problems/sessions", student_id=student_id, status=status, limit=limit, offset=offset
        )

    def get_session(self, session_id: str) -> dict[str, Any]:
        return self._get(f"/api/problems/sessions/{session_id}")

    def submit_response(self, session_id: str, response: str) -> dict[str, Any]:
        return self._post(f"/api/problems/sessions/{session_id}/respond", {"response": response})

    def request_hint(self, session_id: str) -> dict[str, Any]:
        return self._post(f"/api/problems/sessions/{session_id}/hint")

    def abandon_session(self, session_id: str) -> dict[str, Any]:
        return self._post(f"/api/problems/sessions/{session_id}/abandon")

    def heartbeat(self, session_id: str, engagement_level: str = "medium") -> dict[str, Any]:
        return self._post(
            f"/api/problems/sessions/{session_id}/heartbeat", {"engagement_level": engagement_level}
        )

    def session_feedback(
        self,
        session_id: str,
        emotional_state: str | None = None,
        difficulty_perception: int | None = None,
    ) -> dict[str, Any]:
        return self._post(
            f"/api/problems/sessions/{session_id}/feedback",
            {"emotional_state": emotional_state, "difficulty_perception": difficulty_perception},
        )

    def session_analytics(self, session_id: str) -> dict[str, Any]:
        return self._get(f"/api/problems/sessions/{session_id}/analytics")

    def recommended_difficulty(self, subject: str = "general", student_id: str | None = None) -> dict[str, Any]:
        return self._get("/api/problems/recommended-difficulty", subject=subject, student_id=student_id)

    def performance_profile(
        self, subject: str = "general", student_id: str | None = None, refresh: bool = False
    ) -> dict[str, Any]:
        return self._get("/api/problems/profile", subject=subject, student_id=student_id, refresh=refresh)

    def adapt_difficulty(self, subject: str = "general", apply: bool = True, **options: Any) -> dict[str, Any]:
        """Run difficulty adaptation. options: strategy, window_days, student_id."""
        return self._post("/api/problems/adapt-difficulty", {"subject": subject, "apply": apply, **options})

    def trajectory(self, subject: str = "general", student_id: str | None = None) -> dict[str, Any]:
        return self._get("/api/problems/trajectory", subject=subject, student_id=student_id)

    # =========================================================================
    # STUDENT DASHBOARD AND GOALS
    # =========================================================================

    def student_overview(self, student_id: str | None = None) -> dict[str, Any]:
        return self._get("/api/dashboard/student/overview", student_id=student_id)

    def achievements(self, student_id: str | None = None, category: str | None = None) -> dict[str, Any]:
        return self._get("/api/dashboard/student/achievements", student_id=student_id, category=category)

    def activity_feed(
        self,
        student_id: str | None = None,
        activity_type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        return self._get(
            "/api/dashboard/student/activity-feed",
            student_id=student_id,
            type=activity_type,
            limit=limit,
            offset=offset,
        )

    def progress(self, timeframe: str = "7d", student_id: str | None = None) -> dict[str, Any]:
        return self._get("/api/dashboard/student/progress", timeframe=timeframe, student_id=student_id)

    def dashboard_preferences(self) -> dict[str, Any]:
        return self._get("/api/dashboard/preferences")

    def save_dashboard_preferences(self, **preferences: Any) -> dict[str, Any]:
        return self._put("/api/dashboard/preferences", preferences)

    def list_goals(self, student_id: str | None = None, status: str | None = None) -> dict[str, Any]:
        return self._get("/api/dashboard/student/goals", student_id=student_id, goal_status=status)

    def create_goal(self, title: str, **fields: Any) -> dict[str, Any]:
        return self._post("/api/dashboard/student/goals", {"title": title, **fields})

    def get_goal(self, goal_id: str) -> dict[str, Any]:
        return self._get(f"/api/dashboard/student/goals/{goal_id}")

    def update_goal(self, goal_id: str, **fields: Any) -> dict[str, Any]:
        return self._put(f"/api/dashboard/student/goals/{goal_id}", fields)

    def delete_goal(self, goal_id: str) -> dict[str, Any]:
        return self._delete(f"/api/dashboard/student/goals/{goal_id}")

    def add_milestone(self, goal_id: str, title: str) -> dict[str, Any]:
        return self._post(f"/api/dashboard/student/goals/{goal_id}/milestones", {"title": title})

    def complete_milestone(self, goal_id: str, milestone_id: str) -> dict[str, Any]:
        return self._post(f"/api/dashboard/student/goals/{goal_id}/milestones/{milestone_id}/complete")

    # =========================================================================
    # TEACHER AND PARENT DASHBOARDS
    # =========================================================================

    def teacher_overview(self) -> dict[str, Any]:
        return self._get("/api/dashboard/teacher/overview")

    def teacher_alerts(self, notify: bool = False) -> list[dict[str, Any]]:
        return self._get("/api/dashboard/teacher/alerts", notify=notify)

    def weekly_report(self) -> dict[str, Any]:
        return self._get("/api/dashboard/teacher/weekly-report")

    def student_detail(self, student_id: str) -> dict[str, Any]:
        return self._get(f"/api/dashboard/teacher/students/{student_id}")

    def save_teacher_note(self, student_id: str, note: str) -> dict[str, Any]:
        return self._put(f"/api/dashboard/teacher/students/{student_id}/notes", {"note": note})

    def message_student(self, student_id: str, message: str) -> dict[str, Any]:
        return self._post(f"/api/dashboard/teacher/students/{student_id}/message", {"message": message})

    def create_intervention(
        self,
        student_id: str,
        intervention_type: str,
        description: str,
        scheduled_for: str | None = None,
    ) -> dict[str, Any]:
        return self._post(
            f"/api/dashboard/teacher/students/{student_id}/interventions",
            {"intervention_type": intervention_type, "description": description, "scheduled_for": scheduled_for},
        )

    def list_interventions(self, student_id: str | None = None) -> list[dict[str, Any]]:
        return self._get("/api/dashboard/teacher/interventions", student_id=student_id)

    def update_intervention(self, intervention_id: str, status: str, outcome: str | None = None) -> dict[str, Any]:
        return self._put(
            f"/api/dashboard/teacher/interventions/{intervention_id}", {"status": status, "outcome": outcome}
        )

    def parent_overview(self) -> dict[str, Any]:
        return self._get("/api/dashboard/parent/overview")

    def child_detail(self, child_id: str) -> dict[str, Any]:
        return self._get(f"/api/dashboard/parent/children/{child_id}")

    def child_engagement(self, child_id: str, days: int = 30) -> dict[str, Any]:
        return self._get(f"/api/dashboard/parent/children/{child_id}/engagement", days=days)

    def weekly_summary(self, week_start: str | None = None) -> dict[str, Any]:
        return self._get("/api/dashboard/parent/weekly-summary", week_start=week_start)

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    def list_notifications(self, **filters: Any) -> dict[str, Any]:
        """filters: status, category, priority, unread_only, limit, offset."""
        return self._get("/api/notifications", **filters)

    def unread_count(self) -> int:
        return self._get("/api/notifications/unread-count")["count"]

    def get_notification(self, notification_id: str) -> dict[str, Any]:
        return self._get(f"/api/notifications/{notification_id}")

    def send_notification(
        self, type_key: str, recipient_id: str, title: str, message: str, **options: Any
    ) -> dict[str, Any]:
        return self._post(
            "/api/notifications",
            {"type_key": type_key, "recipient_id": recipient_id, "title": title, "message": message, **options},
        )

    def mark_read(self, notification_id: str) -> dict[str, Any]:
        return self._post(f"/api/notifications/{notification_id}/read")

    def dismiss(self, notification_id: str) -> dict[str, Any]:
        return self._post(f"/api/notifications/{notification_id}/dismiss")

    def action_completed(self, notification_id: str) -> dict[str, Any]:
        return self._post(f"/api/notifications/{notification_id}/action-completed")

    def bulk_read(self, notification_ids: list[str] | None = None) -> dict[str, Any]:
        return self._post("/api/notifications/bulk-read", {"notification_ids": notification_ids})

    def notification_preferences(self) -> list[dict[str, Any]]:
        return self._get("/api/notifications/preferences")

    def update_notification_preference(
        self,
        type_key: str,
        enabled: bool,
        channels: list[str] | None = None,
        frequency: str = "immediate",
    ) -> dict[str, Any]:
        return self._put(
            f"/api/notifications/preferences/{type_key}",
            {"enabled": enabled, "channels": channels or ["in_app"], "frequency": frequency},
        )

    def notification_analytics(self, days: int = 30) -> dict[str, Any]:
        return self._get("/api/notifications/analytics", days=days)

    def send_teacher_message(self, student_id: str, message: str) -> dict[str, Any]:
        return self._post(
            "/api/notifications/helpers/teacher-message", {"student_id": student_id, "message": message}
        )

    def send_assignment_reminder(
        self,
        student_id: str,
        assignment_title: str,
        due_date: str,
        scheduled_for: str | None = None,
    ) -> dict[str, Any]:
        return self._post(
            "/api/notifications/helpers/assignment-reminder",
            {
                "student_id": student_id,
                "assignment_title": assignment_title,
                "due_date": due_date,
                "scheduled_for": scheduled_for,
            },
        )

    def deliver_due(self) -> int:
        return self._post("/api/notifications/deliver-due")["delivered"]
