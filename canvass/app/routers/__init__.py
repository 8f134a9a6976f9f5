from . import admin, auth, questionnaires, responses, upload
