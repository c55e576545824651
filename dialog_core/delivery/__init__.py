"""消息投递层：长消息切分 (segmenter) 与按段发送 (sender)。"""
