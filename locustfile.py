from locust import HttpUser, task, between
import random

SUBJECTS = ["Cloud migration", "Network audit", "Managed support", "Security review"]


class PublicSiteUser(HttpUser):
    """Anonymous traffic: the public contact form plus the database probe."""
    wait_time = between(0.1, 0.5)

    @task(3)
    def submit_contact(self):
        n = random.randint(1, 1_000_000)
        self.client.post(
            "/api/contact",
            json={
                "name": f"Visitor {n}",
                "email": f"visitor{n}@example.com",
                "subject": random.choice(SUBJECTS),
                "message": "Please get in touch about pricing.",
            },
        )

    @task(1)
    def database_health(self):
        # 503 only when both pools are down; report it as a failure
        with self.client.get("/api/health/database", catch_response=True) as r:
            if r.status_code != 200:
                r.failure(f"database unhealthy: {r.status_code}")
