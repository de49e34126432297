from peereval.models.activity import Activity
from peereval.models.audit_event import AuditEvent
from peereval.models.evaluation import Evaluation
from peereval.models.evaluation_session import EvaluationSession
from peereval.models.group import Group
from peereval.models.invite_link import InviteLink
from peereval.models.participant_submission import ParticipantSubmission
from peereval.models.user import User

__all__ = [ "Activity", "AuditEvent", "Evaluation",
           "EvaluationSession", "Group", "InviteLink",
           "ParticipantSubmission", "User" ]
