import json
import logging
import re

from langchain_core.globals import set_verbose
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import ChatOpenAI

from .errors import GenerationError, ValidationError
from .schemas import GeneratedQuestion, GenerationRequest, parse

# Suppress the verbose warning by setting the global verbosity flag
set_verbose(False)

logger = logging.getLogger(__name__)

QUESTION_TYPE_SYNONYMS = {
    'mcq': 'mcq',
    'multiple_choice': 'mcq',
    'mcq_multi': 'mcq_multi',
    'multiple_select': 'mcq_multi',
    'true_false': 'true_false',
    'boolean': 'true_false',
    'fill_blank': 'fill_blank',
    'fill_in_blank': 'fill_blank',
    'fill-in-blank': 'fill_blank',
    'scenario': 'scenario',
}

DIFFICULTY_SYNONYMS = {
    'easy': 'easy',
    'simple': 'easy',
    'medium': 'medium',
    'moderate': 'medium',
    'hard': 'hard',
    'difficult': 'hard',
    'expert': 'expert',
    'advanced': 'expert',
}


def normalize_question_type(value):
    """Maps a model-provided type name onto a known type, defaulting to mcq."""
    return QUESTION_TYPE_SYNONYMS.get(str(value or '').strip().lower(), 'mcq')

def normalize_difficulty(value):
    """Maps a model-provided difficulty onto a known level, defaulting to medium."""
    return DIFFICULTY_SYNONYMS.get(str(value or '').strip().lower(), 'medium')

def get_openrouter_client(model_name, temperature, api_key, max_retries):
    """Helper function to create a ChatOpenAI client for OpenRouter."""
    return ChatOpenAI(
        model=model_name,
        temperature=temperature,
        openai_api_key=api_key,
        openai_api_base="https://openrouter.ai/api/v1",
        default_headers={
            "HTTP-Referer": "http://localhost",
            "X-Title": "Knowledge Questions"
        },
        max_retries=max_retries
    )

def build_generation_prompt(request):
    """Builds the instruction sent to the model for a generation request."""
    request = parse(GenerationRequest, request)
    types = ', '.join(request.types)
    title = f" from the SOP \"{request.sop_title}\"" if request.sop_title else ""

    return f"""Generate {request.count} quiz questions based on the following content{title}.

REQUIREMENTS:
- Question types: {types}
- Difficulty: {request.difficulty}
- Include {'hints' if request.include_hints else 'no hints'}
- Include {'explanations' if request.include_explanations else 'no explanations'}

OUTPUT FORMAT (JSON array):
[
  {{
    "question_text": "Question text here",
    "question_type": "mcq|mcq_multi|true_false|fill_blank",
    "difficulty_level": "easy|medium|hard|expert",
    "options": [
      {{"text": "Option A", "is_correct": false, "feedback": "Why this is wrong"}},
      {{"text": "Option B", "is_correct": true, "feedback": "Why this is correct"}}
    ],
    "correct_answer": "For true_false: true|false, for fill_blank: the answer",
    "explanation": "Explanation after answering",
    "hint": "Optional hint",
    "linked_section": "Section reference from the content",
    "tags": ["tag1", "tag2"],
    "confidence_score": 0.9
  }}
]

CONTENT TO BASE QUESTIONS ON:
{request.sop_content}

Generate exactly {request.count} questions as a JSON array:"""

def _normalize_options(raw_options, correct_answer):
    options = []
    for opt in raw_options or []:
        if isinstance(opt, str):
            # Bare strings: the correct one is named by correct_answer
            options.append({'text': opt, 'is_correct': opt == correct_answer})
        elif isinstance(opt, dict):
            text = opt.get('text') or opt.get('option_text')
            if not text:
                continue
            options.append({
                'text': text,
                'is_correct': bool(opt.get('is_correct', False)),
                'feedback': opt.get('feedback'),
            })
    return options

def _normalize_entry(entry):
    question_type = normalize_question_type(entry.get('question_type') or entry.get('type'))
    correct_answer = entry.get('correct_answer')
    if isinstance(correct_answer, bool):
        correct_answer = 'true' if correct_answer else 'false'
    elif correct_answer is not None:
        correct_answer = str(correct_answer)
        if question_type == 'true_false':
            correct_answer = correct_answer.strip().lower()

    return {
        'question_text': entry.get('question_text') or entry.get('text'),
        'question_type': question_type,
        'difficulty_level': normalize_difficulty(entry.get('difficulty_level') or entry.get('difficulty')),
        'options': _normalize_options(entry.get('options'), correct_answer),
        'correct_answer': correct_answer,
        'explanation': entry.get('explanation'),
        'hint': entry.get('hint'),
        'linked_section': entry.get('linked_section'),
        'tags': [str(t) for t in entry.get('tags') or []],
        'confidence_score': entry.get('confidence_score'),
    }

def parse_generated_questions(text):
    """
    Extracts the questions from a raw model response.

    Entries without question text are dropped; anything else that does not
    fit the schema is a GenerationError.
    """
    match = re.search(r'\[[\s\S]*\]', text or '')
    if not match:
        raise GenerationError("No JSON array found in the model response")

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise GenerationError(f"Model response is not valid JSON: {e}") from e

    questions = []
    for entry in parsed:
        if not isinstance(entry, dict):
            raise GenerationError("Model response contains a non-object question")
        normalized = _normalize_entry(entry)
        if not normalized['question_text']:
            logger.warning("Dropping generated question without text")
            continue
        try:
            questions.append(parse(GeneratedQuestion, normalized))
        except ValidationError as e:
            raise GenerationError(f"Generated question does not fit the schema: {e.message}") from e
    return questions

def generate_questions(request, config, llm=None):
    """
    Asks the model for draft questions about the request's content.

    Args:
        request: GenerationRequest or its dict form.
        config: mapping with the OPENROUTER_* and GENERATION_* settings.
        llm: optional chat model used instead of the OpenRouter client.

    Returns:
        list of GeneratedQuestion, never empty.

    Raises:
        GenerationError: the model call failed or produced no usable question.
    """
    request = parse(GenerationRequest, request)

    if llm is None:
        api_key = config.get('OPENROUTER_API_KEY')
        if not api_key:
            raise GenerationError("OPENROUTER_API_KEY not configured")
        llm = get_openrouter_client(
            config.get('GENERATION_MODEL'),
            config.get('GENERATION_TEMPERATURE', 0.4),
            api_key,
            config.get('OPENROUTER_MAX_RETRIES', 3)
        )

    system_context = config.get('GENERATION_CONTEXT_SYSTEM') or (
        "You write assessment questions for hotel staff training. Answer with JSON only."
    )
    prompt = ChatPromptTemplate.from_messages([
        ("system", "{system_context}"),
        ("human", "{instructions}"),
    ])
    chain = prompt | llm | StrOutputParser()

    try:
        response = chain.invoke({
            "system_context": system_context,
            "instructions": build_generation_prompt(request),
        })
    except Exception as e:
        logger.warning("Question generation failed: %s", e)
        raise GenerationError(f"Question generation failed: {e}") from e

    questions = parse_generated_questions(response)
    if not questions:
        raise GenerationError("The model returned no questions")
    return questions

def save_generated_questions(store, generated, user_id, model_name=None, linked_sop_id=None):
    """
    Stores generated questions as AI-generated drafts.

    Questions that break the answer rules (e.g. an mcq with no correct
    option) are skipped and logged.

    Returns:
        list of the created Question objects.
    """
    saved = []
    for question in generated:
        try:
            saved.append(store.create_question(
                question.to_form(linked_sop_id),
                user_id,
                ai_generated=True,
                ai_model_used=model_name,
                ai_confidence_score=question.confidence_score,
            ))
        except ValidationError as e:
            logger.warning("Skipping generated question '%s': %s", question.question_text[:60], e.message)
    return saved
