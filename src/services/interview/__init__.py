from src.services.interview.turn_loop import InterviewTurnLoop, ModeratorStatus, TurnState

__all__ = ["InterviewTurnLoop", "ModeratorStatus", "TurnState"]
