ROLE_ADMIN = 'admin'
ROLE_CANDIDATE = 'candidate'

STATUS_PENDING = 'pending'
STATUS_IN_PROGRESS = 'in-progress'
STATUS_COMPLETED = 'completed'

# Backend tables
PROFILES_TABLE = 'profiles'
TESTS_TABLE = 'tests'
RESULTS_TABLE = 'result_test'

QUESTION_SCALE = 'scale'
QUESTION_CHOICE = 'choice'
VARIATION_SINGLE = 'single'
VARIATION_MOST_LEAST = 'most_least'
SCALE_VALUES = (1, 2, 3, 4, 5)

# Option value presets offered by the test builder
PROFILE_OPTIONS = ['Analítico', 'Organizado', 'Comunicativo', 'Líder']
SCORE_OPTIONS = [str(i) for i in range(11)]

MIN_PASSWORD_LENGTH = 6

# Wire-format keys shared with the external answer-processing workflow
ANSWER_KEY = 'resposta'
PERSONALITY_SECTIONS = [
    'caracteirsta-de-personalidade-comunicacao',
    'caracteirsta-de-personalidade-organizacao',
    'caracteirsta-de-personalidade-lideranca',
    'caracteirsta-de-personalidade-analitico',
]
ANALYSIS_MARKER_SECTION = 'caracteirsta-de-personalidade-lideranca'
CALCULATION_METADATA = 'metadados_calculo'
SCORE_SCALE = 'escala_0_100'
MAIN_CONCLUSIONS = 'principais-conclusoes'
NATURAL_BEHAVIOURS = 'comportamentos-naturais'
BEHAVIOURS_TO_INVESTIGATE = 'comportamentos-para-investigar'
HR_RECOMMENDATIONS = 'recomendacoes-ao-rh'
INTERVIEW_QUESTIONS = 'perguntas-para-entrevista'

# Views
VIEW_LOGIN = 'login'
VIEW_CANDIDATE_TEST = 'candidate-test'
ADMIN_VIEWS = [
    ('dashboard', 'Dashboard'),
    ('candidates', 'Candidates'),
    ('tests', 'Tests'),
    ('results', 'Results'),
    ('admin-users', 'Admin Users'),
]
DEFAULT_ADMIN_VIEW = 'dashboard'
