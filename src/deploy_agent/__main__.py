"""Run the agent with `python -m deploy_agent`."""

from deploy_agent.main import run

if __name__ == "__main__":
    run()
