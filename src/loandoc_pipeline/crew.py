from typing import Optional

from crewai import Agent, Crew, Process, Task
from crewai.project import CrewBase, agent, task

from .models import ReviewerVerdict
from .router.router import llmrouter
from .tools.usury import check_state_usury


@CrewBase
class LoanDocCrew:
    """Drafting + compliance-review agents for one loan document."""

    agents_config = 'config/agents.yaml'
    tasks_config  = 'config/tasks.yaml'

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout

    # ──────────────── Agents ────────────────
    @agent
    def drafter(self) -> Agent:
        return Agent(
            config=self.agents_config['drafter'],
            tools=[],
            verbose=False,
            llm=llmrouter(timeout=self.timeout),
            max_iter=1,
            allow_delegation=False,
        )

    @agent
    def reviewer(self) -> Agent:
        return Agent(
            config=self.agents_config['reviewer'],
            tools=[check_state_usury],
            verbose=False,
            llm=llmrouter(timeout=self.timeout),
            max_iter=2,
            allow_delegation=False,
        )

    # ──────────────── Tasks ────────────────
    @task
    def draft_task(self) -> Task:
        return Task(
            config=self.tasks_config['draft_task'],
            agent=self.drafter(),
        )

    @task
    def review_task(self) -> Task:
        return Task(
            config=self.tasks_config['review_task'],
            agent=self.reviewer(),
            output_pydantic=ReviewerVerdict,
        )

    # ──────────────── Crews ────────────────
    def drafting_crew(self) -> Crew:
        return Crew(
            agents=[self.drafter()],
            tasks=[self.draft_task()],
            process=Process.sequential,
            verbose=False,
        )

    def review_crew(self) -> Crew:
        return Crew(
            agents=[self.reviewer()],
            tasks=[self.review_task()],
            process=Process.sequential,
            verbose=False,
        )
