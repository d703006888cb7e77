"""Chat/UI facing texts. Log messages never reuse these."""

NO_MATCH_MESSAGE = "No matching clip was found. Please refine your search."
INVALID_URL_MESSAGE = "Unable to retrieve clip data. Please try again with a valid URL."
NO_REPLAY_MESSAGE = "No clip available for replay."
SERVICE_UNAVAILABLE_MESSAGE = "Clips are unavailable right now. Please try again in a moment."
SURFACE_UNREADY_MESSAGE = "The clip player isn't ready. Please let the streamer know."

APPROVAL_WAITING_MESSAGE = "I'll wait a minute for a mod to approve or deny this clip, starting now."
APPROVAL_TIMEOUT_MESSAGE = "Time's up! The clip wasn't approved, maybe next time!"
APPROVAL_GRANTED_MESSAGE = "The clip has been approved!"
APPROVAL_DENIED_MESSAGE = "The clip was denied by a moderator."

CONTENT_WARNING_INSTRUCTION = (
    "Content warning shown on the clip player. In OBS, right-click the browser source, "
    "choose 'Interact' and click through the warning."
)

AFFIRMATIVE_WORDS = (
    "yes", "yep", "yeah", "yar", "go ahead", "yup", "sure", "fine", "okay", "ok",
    "play it", "alright", "alrighty", "alrighties", "seemsgood", "thumbsup",
)
DENIAL_WORDS = (
    "no", "nay", "nope", "nah", "nar", "naw", "not sure", "not okay", "not ok",
    "okayn't", "yesn't", "not alright", "thumbsdown",
)
