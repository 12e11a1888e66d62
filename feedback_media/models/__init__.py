from .user import User
from .owners import SurveyResponse, Feedback
from .media import FeedbackMedia
# base holds the shared mixins and helpers
