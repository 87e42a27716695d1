"""User-facing strings. Every failure path has its own stable message."""

from .schemas import GenerationMode

INVALID_FILE = "Por favor, selecione um arquivo de imagem válido (JPEG, PNG, WEBP, etc.)."
FILE_TOO_LARGE = "A imagem selecionada é grande demais. Por favor, escolha um arquivo menor."
GENERATION_FAILED = (
    "A IA não conseguiu processar a imagem. Por favor, tente novamente ou use uma foto diferente."
)
REFINEMENT_FAILED = "A IA não conseguiu refinar a imagem. Por favor, tente novamente."

PROCESSING_STUDIO = "Recriando com perfeição..."
PROCESSING_LIFESTYLE = "Criando suas fotos ambiente..."
PROCESSING_REFINEMENT = "Refinando sua imagem..."


def processing_message_for(mode: GenerationMode) -> str:
    if mode is GenerationMode.STUDIO:
        return PROCESSING_STUDIO
    return PROCESSING_LIFESTYLE
