"""Operations over the task store."""
